from typing import TypedDict

from rest_framework.viewsets import ViewSetMixin


class RouteDict(TypedDict):
    """
    A router registration entry: URL prefix, viewset class and basename.
    """

    regex: str
    viewset: type[ViewSetMixin]
    basename: str
