"""HTTP callback API (FastAPI) for the bot's modal submissions."""
