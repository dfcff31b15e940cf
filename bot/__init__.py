"""
Reddit to Discord relay bot

Watches one subreddit for new posts, comments and moderator approvals and
relays them to a Discord webhook.
"""

__version__ = "0.1.0"
