from fastapi import HTTPException, Request, status


def get_app_state(request: Request):
    """
    Dependency returning the AppState built by the application lifespan.

    Raises:
        HTTPException: 503 if the lifespan has not initialized the gateway
    """
    app_state = getattr(request.app.state, "app_state", None)
    if app_state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway not initialized"
        )
    return app_state
