"""API schemas package."""

from .common import *
from .quota import *
