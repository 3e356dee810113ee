"""
Card template catalog service.

Two controllers share one live view of the ``card_templates`` collection:
an admin editor that signs in and manages paired front/back card images,
and a public gallery that groups them into downloadable pairs. Both are
served by a FastAPI application over pluggable record, blob and auth
backends.
"""
