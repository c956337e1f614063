import hmac

from fastapi import Header, HTTPException, Request


def verify_api_key(request: Request, x_api_key: str | None = Header(None)):
    expected = request.app.state.settings.downstream_api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
