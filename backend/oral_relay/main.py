from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .logging_config import setup_logging
from .services import AppServices
from .settings import settings
from .routers import health
from .routers import relay
from .routers import session
from .routers import teacher
from .routers import turn


def create_app(services: Optional[AppServices] = None, *, configure_logging: bool = True) -> FastAPI:
	app = FastAPI(title="Oral Assessment Relay API")
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(health.router)
	app.include_router(session.router)
	app.include_router(teacher.router)
	app.include_router(turn.router)
	app.include_router(relay.router)
	app.state.services = services

	@app.get("/info")
	def root(request: Request):
		services = request.app.state.services
		return {
			"status": "ok",
			"gemini_configured": bool(settings.gemini_api_key),
			"elevenlabs_configured": bool(settings.elevenlabs_api_key),
			"openai_configured": bool(settings.openai_api_key),
			"demo_mode": services.demo_mode if services is not None else settings.demo_mode,
		}

	@app.on_event("startup")
	async def startup_event():
		if configure_logging:
			setup_logging()
		# Injected services (tests) are used as-is
		if app.state.services is None:
			app.state.services = AppServices.build(settings)

	@app.on_event("shutdown")
	async def shutdown_event():
		if app.state.services is not None:
			await app.state.services.aclose()

	return app


app = create_app()
