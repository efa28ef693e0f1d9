import html
from typing import Optional

_TEMPLATE = """<html><head><style>
html,body {{ margin: 0; padding: 0; height: 100%; width: 100%;{background} }}
form {{ display: none; }}</style></head>
<body onload="document.getElementById('form').submit();">
<form action="{url}" method="post" id="form"><input name="token_ws" value="{token}"></form></body></html>"""


def transition_page(url: str, token: str, background_url: Optional[str] = None) -> str:
    """Blank page that POSTs ``token_ws`` to ``url`` on load.

    Transbank requires this page between the result and the voucher.
    No outside resource is loaded unless ``background_url`` is given.
    """
    background = ""
    if background_url:
        background = f" background-image: url({html.escape(background_url, quote=True)});"
    return _TEMPLATE.format(
        background=background,
        url=html.escape(url, quote=True),
        token=html.escape(str(token), quote=True),
    )
