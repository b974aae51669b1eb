from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)):
    return container.settings


def get_entitlement_service(container: ApplicationContainer = Depends(get_container)):
    return container.entitlement_service


def get_webhook_processor(container: ApplicationContainer = Depends(get_container)):
    return container.webhook_processor


def get_clock(container: ApplicationContainer = Depends(get_container)):
    return container.clock
