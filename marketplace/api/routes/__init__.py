from . import auth, lessons, purchases, videos

__all__ = ["auth", "lessons", "purchases", "videos"]
