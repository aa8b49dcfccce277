"""
                        Services Module

External collaborators of the order queue, each with an in-memory
(development) and a real (production) implementation.

Services:
    - store: orders table + atomic ticket counter (memory / SQL)
    - realtime: change notification feed (memory / Redis pub/sub)
"""
