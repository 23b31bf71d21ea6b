"""
Physics engine boundary for the player client.

The client never simulates anything itself; it hands snapshots and
freeze requests to whatever engine the game embeds.
"""

from typing import Any, Dict, Iterable, List


class PhysicsAdapter:
    """No-op engine; subclass to drive a real simulation."""

    def apply_snapshot(self, objects: List[Dict[str, Any]]) -> None:
        """Replace every local body with the authoritative snapshot."""

    def freeze(self, object_ids: Iterable[str]) -> None:
        """Zero velocities and disable interaction for these bodies."""

    def add_object(self, obj: Dict[str, Any]) -> None:
        """Instantiate a body spawned by either participant."""

    def move_object(self, object_id: str, x: float, y: float, angle: float) -> None:
        """Mirror the peer's drag of an object."""


class RecordingPhysics(PhysicsAdapter):
    """Keeps the last snapshot and frozen set; used headless and in tests."""

    def __init__(self):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.frozen = set()

    def apply_snapshot(self, objects):
        self.objects = {obj['id']: dict(obj) for obj in objects}
        self.frozen = set()

    def freeze(self, object_ids):
        for object_id in object_ids:
            if object_id in self.objects:
                self.objects[object_id]['velocity_x'] = 0
                self.objects[object_id]['velocity_y'] = 0
            self.frozen.add(object_id)

    def add_object(self, obj):
        self.objects[obj['id']] = dict(obj)

    def move_object(self, object_id, x, y, angle):
        obj = self.objects.setdefault(object_id, {'id': object_id})
        obj.update({'x': x, 'y': y, 'angle': angle})
