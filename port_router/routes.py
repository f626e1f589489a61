import html

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from port_router.models import RouterConfig
from port_router.vars import PROXY_SEGMENT

router = APIRouter()

_PAGE_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Port Router - select a target</title>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
            padding: 20px;
        }
        .container {
            background: white;
            border-radius: 16px;
            box-shadow: 0 20px 60px rgba(0, 0, 0, 0.3);
            max-width: 800px;
            width: 100%;
            padding: 40px;
        }
        h1 { color: #333; margin-bottom: 10px; font-size: 32px; }
        .subtitle { color: #666; margin-bottom: 30px; font-size: 16px; }
        .targets { display: grid; gap: 16px; }
        .target-card {
            background: #f8f9fa;
            border: 2px solid transparent;
            border-radius: 12px;
            padding: 20px;
            text-decoration: none;
            color: inherit;
            display: block;
            transition: all 0.3s ease;
        }
        .target-card:hover { border-color: #667eea; transform: translateY(-2px); }
        .target-name { font-size: 20px; font-weight: 600; color: #333; margin-bottom: 8px; }
        .target-port { font-size: 14px; color: #667eea; font-weight: 500; margin-bottom: 8px; }
        .target-description { font-size: 14px; color: #666; }
    </style>
</head>
<body>
    <div class="container">
        <h1>Port Router</h1>
        <p class="subtitle">Select the service you want to open</p>
        <div class="targets">
"""

_PAGE_TAIL = """        </div>
    </div>
</body>
</html>
"""

_TARGET_CARD = """            <a href="{href}" class="target-card">
                <div class="target-name">{name}</div>
                <div class="target-port">localhost:{port}</div>
                <div class="target-description">{description}</div>
            </a>
"""


def render_selector(config: RouterConfig, segment: str) -> str:
    """Render the landing page listing every target in registration order."""
    cards = [
        _TARGET_CARD.format(
            href=html.escape(target.proxy_prefix(segment), quote=True),
            name=html.escape(target.name),
            port=target.port,
            description=html.escape(target.description),
        )
        for target in config.targets
    ]
    return _PAGE_HEAD + "".join(cards) + _PAGE_TAIL


@router.get("/", response_class=HTMLResponse)
async def show_selector(request: Request):
    return HTMLResponse(content=render_selector(request.app.state.config, PROXY_SEGMENT))
