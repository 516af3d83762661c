from fastapi import Request

from prgate_core.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_config(request: Request) -> dict:
    return request.app.state.config
