"""stickbot: a stick figure that reacts out loud to a live chat."""

__version__ = "0.1.0"
