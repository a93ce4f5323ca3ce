from finledgr.api.patterns import router as patterns_router

__all__ = ["patterns_router"]
