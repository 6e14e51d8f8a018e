from fastapi import Request

from codey_gateway.providers.generator import GatewayContentGenerator


def get_generator(request: Request) -> GatewayContentGenerator:
    return request.app.state.generator
