"""
OpenAPI schema customizations for drf-spectacular.

This module provides a postprocessing hook that tidies the generated schema
for ReDoc: natural language summaries for the JWT token endpoints and
descriptions for every tag group.

Tag naming follows the pattern: [App Name] - [Group Name]
Examples:
- Auth (token obtain / refresh)
- Billing - Invoices
- Billing - Payments
- Billing - Refunds
- Billing - Installment Plans
"""

# Natural language summaries for simplejwt endpoints
# Maps operation_id to (summary, description)
TOKEN_ENDPOINT_SUMMARIES = {
    "auth_token_create": (
        "Obtain tokens",
        "Authenticate with username and password to receive JWT tokens.",
    ),
    "auth_token_refresh_create": (
        "Refresh access token",
        "Get a new access token using a valid refresh token.",
    ),
}

TAG_DESCRIPTIONS = [
    {
        "name": "Auth",
        "description": "JWT token issuance and refresh.",
    },
    {
        "name": "Billing - Invoices",
        "description": (
            "Invoices with a running balance. Status is derived from the "
            "amount paid and the due date."
        ),
    },
    {
        "name": "Billing - Payments",
        "description": "Payment confirmations and cash receipts applied to invoices.",
    },
    {
        "name": "Billing - Refunds",
        "description": (
            "Refund requests, review, and settlement. Settlement updates the "
            "payment, invoice and refund atomically."
        ),
    },
    {
        "name": "Billing - Installment Plans",
        "description": (
            "Invoice balances split into equal installments. Each installment "
            "is recorded as a regular payment."
        ),
    },
]


def group_api_endpoints(result, generator, request, public):
    """
    Postprocessing hook to group API endpoints by function.

    Billing endpoints carry tags= from their @extend_schema declarations.
    Token endpoints come from simplejwt and are grouped here under "Auth".
    """
    paths = result.get("paths", {})

    for path, methods in paths.items():
        for method, operation in methods.items():
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId", "")

            if operation_id in TOKEN_ENDPOINT_SUMMARIES:
                summary, description = TOKEN_ENDPOINT_SUMMARIES[operation_id]
                operation["summary"] = summary
                operation["description"] = description

            if operation_id.startswith("auth_"):
                operation["tags"] = ["Auth"]

    result["tags"] = TAG_DESCRIPTIONS
    return result
