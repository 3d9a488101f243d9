# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Production / load-test traffic isolation service.

Classifies each inbound request once at the edge and routes every datasource,
cache and stream access to the matching isolated backend.
"""

__version__ = "1.0.0"
