"""
=============================================================================
REQUEST HANDLERS
=============================================================================

A handler is any callable that takes an HTTPRequest and returns an
HTTPResponse:

    Handler = Callable[[HTTPRequest], HTTPResponse]

The server has exactly one, GreetingHandler, registered as the dispatch
target for every accepted connection. There is no router in front of it.

=============================================================================
"""

from typing import Callable

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from .greeting import GreetingHandler, greet

Handler = Callable[[HTTPRequest], HTTPResponse]

__all__ = [
    "Handler",
    "GreetingHandler",
    "greet",
]
