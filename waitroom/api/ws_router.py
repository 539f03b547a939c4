"""WebSocket route for gate connections."""
from fastapi import APIRouter, WebSocket
from ..streaming.gate_connection import handle_gate_websocket

router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for entering the waiting room.

    Client messages:
    - ``{"type": "ping"}`` -> ``{"type": "ping", "timestamp": ...}``
    - ``{"type": "enter", "token": "<encrypted token>"}`` -> success or error

    When the admission window closes the server pushes
    ``{"type": "expired", ...}`` once.

    Example client (JavaScript):
    ```javascript
    const ws = new WebSocket('ws://localhost:8080/ws');
    ws.onopen = () => ws.send(JSON.stringify({type: 'enter', token}));
    ws.onmessage = (event) => {
        const data = JSON.parse(event.data);
        if (data.type === 'expired') {
            showTimeout();
        }
    };
    ```
    """
    state = websocket.app.state
    settings = state.settings
    await handle_gate_websocket(
        websocket,
        manager=state.connections,
        gate=state.gate,
        decryptor=state.decryptor,
        metrics=state.metrics,
        rate_limit_messages=settings.WS_RATE_LIMIT_MESSAGES,
        rate_limit_window=settings.WS_RATE_LIMIT_WINDOW,
    )
