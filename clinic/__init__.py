"""Clinic application for the hospital backend.

This package contains the appointment workflow: models, services,
serializers, views and route registrations for booking, status changes,
reminders, referrals and the waiting list.
"""
