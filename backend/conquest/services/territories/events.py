from flask import current_app

from conquest import socketio

MAP_ROOM = 'map'
NAMESPACE = '/ws'


def publish_conquest(result) -> None:
    """Fire-and-forget notification after a committed conquest.

    Listeners (map clients, achievement and XP consumers) react on their
    own; nothing here can fail the conquest.
    """
    payload = {
        'territory_id': result.territory_id,
        'owner_id': result.owner_id,
        'area_square_meters': result.area_square_meters,
        'merged_territory_ids': result.merged_territory_ids,
        'stolen': {str(k): v for k, v in result.stolen.items()},
        'captured_at': result.captured_at.isoformat() if result.captured_at else None,
    }
    try:
        socketio.emit('territory_conquered', payload, to=MAP_ROOM, namespace=NAMESPACE)
    except Exception as exc:
        current_app.logger.warning(f"[event-drop] territory_conquered territory={result.territory_id}: {exc}")
