"""
Video Script Monitor backend - filesystem observation and task state sync.
"""
