"""Domain value objects.

Each type validates its input in a ``parse()`` classmethod and raises
``newsletter.core.errors.ValidationError`` on bad input.
"""
