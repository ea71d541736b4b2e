"""Side-effect hooks fired after a committed transition.

Publishing the derived work item and notifying participants are both
outside the engine; the defaults here only log.
"""
