"""Core reaction loop for stickbot."""

# Loop state and value types
from .context import IncomingMessage, ReactionState, ReactorContext, Utterance
from .pending_batch import PendingBatch

# Loop components
from .feed_poller import FeedPoller
from .reaction_trigger import ReactionTrigger
from .playback import PlaybackController

# External collaborators
from .youtube_chat_client import ChatFetchResult, ChatMessage, YouTubeChatClient
from .reaction_generator import ReactionGenerator
from .audio_output import NullAudioOutput, PyAudioOutput

__all__ = [
    # State
    "IncomingMessage",
    "ReactionState",
    "ReactorContext",
    "Utterance",
    "PendingBatch",
    # Loop
    "FeedPoller",
    "ReactionTrigger",
    "PlaybackController",
    # Collaborators
    "ChatFetchResult",
    "ChatMessage",
    "YouTubeChatClient",
    "ReactionGenerator",
    "NullAudioOutput",
    "PyAudioOutput",
]
