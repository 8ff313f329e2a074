from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request, status


async def api_key_auth(request: Request, x_api_key: Optional[str] = Header(default=None)) -> None:
	"""Необязательная проверка заголовка X-API-KEY для изменяющих эндпоинтов.
	Ключ читается при старте приложения (API_KEY) и хранится в app.state;
	пустой ключ отключает проверку."""
	required: Optional[str] = getattr(request.app.state, "api_key", None)
	if not required:
		return
	if not x_api_key or not hmac.compare_digest(x_api_key, required):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")
