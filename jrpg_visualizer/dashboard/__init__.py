"""Dashboard feed server: pull endpoint, SSE stream and the hook's notification sink.

The UI itself lives elsewhere; this package only serves its data.
"""

from .app import create_app  # noqa: F401
from .events import FeedBroadcaster  # noqa: F401
