from fastapi import Request

from .services import AppServices


def get_services(request: Request) -> AppServices:
	return request.app.state.services
