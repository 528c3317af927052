import json
from channels.generic.websocket import AsyncWebsocketConsumer

from clinic.services.realtime import APPOINTMENTS_GROUP

STAFF_ROLES = ("admin", "doctor", "nurse", "receptionist")


class AppointmentUpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes appointment changes to staff dashboards."""
    GROUP = APPOINTMENTS_GROUP

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated and (user.is_superuser or getattr(user, "role", None) in STAFF_ROLES)):
            await self.close(code=4003)
            return
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def appointment_event(self, event):
        # event: {"type": "appointment.event", "event": "created", "appointmentId": int, ...}
        await self.send(json.dumps(event))
