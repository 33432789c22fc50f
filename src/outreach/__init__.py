"""B2B Outreach Pipeline Service.

This package drives imported company leads through a human-in-the-loop
outreach pipeline: contact discovery, AI-drafted cold emails, human review
and approval, and transactional delivery.
"""

__version__ = "0.1.0"
