import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routers.pipeline import router as pipeline_router


def create_app() -> FastAPI:
	app = FastAPI(title="HDR Merge API", version="0.1.0")

	# CORS (adjust origins in production)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=False,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	app.include_router(pipeline_router)

	return app


app = create_app()


if __name__ == "__main__":
	# Local dev server: uvicorn api.main:app --reload
	import uvicorn

	logging.basicConfig(level=logging.INFO)
	uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
