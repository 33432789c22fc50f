"""Default values shared across the outreach pipeline."""

# Apollo
APOLLO_BASE_URL = "https://api.apollo.io/api/v1"
APOLLO_PEOPLE_PAGE_SIZE = 100
MAX_CONTACT_CANDIDATES = 10

# OpenAI
DEFAULT_OPENAI_MODEL = "gpt-4o"

# Batch processing
DEFAULT_CHUNK_SIZE = 3
DEFAULT_CHUNK_DELAY_SECONDS = 0.5

# Generation retry policy
DEFAULT_GENERATION_MAX_RETRIES = 2
DEFAULT_GENERATION_RETRY_BASE_DELAY_SECONDS = 1.0

# Stored records
ACTIVE_PROMPT_NAME = "active_prompt"
DEFAULT_SETTINGS_ID = "default"

# Placeholders the model may leave in a generated body
CONTACT_FIRST_NAME_PLACEHOLDER = "{{CONTACT_FIRST_NAME}}"
CONTACT_LAST_NAME_PLACEHOLDER = "{{CONTACT_LAST_NAME}}"

# Job titles searched for a contact, highest priority first
TARGET_TITLES = [
    # Founders / C-Suite
    "CEO",
    "Founder",
    "Co-Founder",
    "Chief Executive Officer",
    "Managing Director",
    "Owner",
    # Marketing
    "CMO",
    "Chief Marketing Officer",
    "VP Marketing",
    "Head of Marketing",
    "Marketing Director",
    "Brand Director",
    "Communications Director",
    # Growth / Revenue
    "Head of Growth",
    "VP Growth",
    "Growth Lead",
    "Director of Growth",
    "CRO",
    "Chief Revenue Officer",
    "Business Development Director",
    # Sales
    "VP Sales",
    "Head of Sales",
    "Sales Director",
    # Product
    "CPO",
    "Chief Product Officer",
    "Head of Product",
    "VP Product",
]

DEFAULT_SYSTEM_PROMPT = """You are an experienced B2B copywriter writing a short, \
personal first-touch email to a decision maker at the company described below.

Guidelines:
- Open with {{CONTACT_FIRST_NAME}} and reference something specific about the company.
- Keep the body between 80 and 180 words, plain text, no links and no attachments.
- One clear, low-pressure call to action at the end.
- Avoid hype, exclamation marks and phrases that read like marketing spam.
- The subject line is short (under 60 characters) and does not use all caps.

Respond ONLY with a JSON object in exactly this shape:
{"subject": "<subject line>", "email_body": "<plain text email body>"}
"""
