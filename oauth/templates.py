"""HTML pages served by the loopback redirect listener.

Every request gets one of these with a 200 status so the browser tab
can be closed. Neither page reveals whether the attempt succeeded.
"""

# ============== Loopback Listener Templates ==============

PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Slump</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
               display: flex; justify-content: center; align-items: center;
               height: 100vh; margin: 0; background: #111827; color: #E5E7EB; }}
        .box {{ background: #1F2937; padding: 40px; border-radius: 8px;
                border: 1px solid #374151; text-align: center; }}
    </style>
</head>
<body><div class="box"><h2>{message}</h2></div>{script}</body>
</html>"""

CLOSE_SCRIPT = "<script>window.close()</script>"

CALLBACK_MESSAGE = "Sign-in received. You can close this window."
NEUTRAL_MESSAGE = "Nothing to see here."


def callback_page() -> str:
    """Page for requests on the callback path."""
    return PAGE.format(message=CALLBACK_MESSAGE, script=CLOSE_SCRIPT)


def neutral_page() -> str:
    """Page for any other path."""
    return PAGE.format(message=NEUTRAL_MESSAGE, script="")
