from flask_socketio import join_room, leave_room, emit

from conquest.services.territories.events import MAP_ROOM, NAMESPACE


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_join_map(data=None):
    """Subscribe this socket to conquest updates for the shared map."""
    join_room(MAP_ROOM)
    emit('joined', {'room': MAP_ROOM})


def handle_leave_map(data=None):
    leave_room(MAP_ROOM)
    emit('left', {'room': MAP_ROOM})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from conquest import socketio

    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_map', handle_join_map, namespace=namespace)
        socketio.on_event('leave_map', handle_leave_map, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
