import uvicorn

uvicorn.run("src.api.app:app", host="0.0.0.0", port=8000, log_config=None)
