from photo_discovery.router.agent import router, photo_discovery_error_handler

__all__ = ["router", "photo_discovery_error_handler"]
