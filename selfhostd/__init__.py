"""
selfhostd: provision and operate self-hosted services on kubernetes
"""
