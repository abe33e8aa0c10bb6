from src.agents.import_service import app as import_app

__all__ = ["import_app"]
