"""Default values used when a user has not configured their own."""

DEFAULT_TERMS_AND_CONDITIONS: tuple[str, ...] = (
    "50% of the total amount is due when the quote is approved.",
    "The remaining balance is due on delivery of the product or completion of the service.",
    "The customer accepts the quote by making the first payment described in these terms.",
    "Any change to the requirements after the quote is approved may incur an additional cost.",
)

DEMO_USER_ID = "5b1f4e2a-7c3d-4e8f-9a6b-2d4c6e8f0a1b"
