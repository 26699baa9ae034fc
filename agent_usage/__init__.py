__version__ = "0.3.0"
__all__ = ["app", "__version__"]


def __getattr__(name: str):
    if name == "app":
        from agent_usage.main import app as fastapi_app

        return fastapi_app
    raise AttributeError(name)
