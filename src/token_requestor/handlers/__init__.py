"""
Handlers package - kopf event handlers of the token requestor.

- secrets.py: renewal daemon and watch events of carrier Secrets
"""
