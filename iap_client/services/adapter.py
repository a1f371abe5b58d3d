"""
Marketplace adapter protocol.

Any marketplace backend (web API, native store bridge, test double) must
implement this interface. Exceptions raised by an adapter reach the purchase
callback unchanged.
"""

from typing import Protocol

from iap_client.models.domain import TransactionInfo


class MarketplaceAdapter(Protocol):
    """Starts transactions and fetches receipts from a marketplace."""

    async def start_transaction(self, product_id: str) -> TransactionInfo:
        """
        Start a purchase transaction.

        Args:
            product_id: The product being bought

        Returns:
            Transaction info carrying the signed pay request token
        """
        ...

    async def fetch_receipt(self, transaction: TransactionInfo) -> str:
        """
        Fetch the receipt for a transaction the provider reported as paid.

        Args:
            transaction: Transaction returned by start_transaction

        Returns:
            The receipt token
        """
        ...


class NativePayProvider(Protocol):
    """A platform payment API that shows its own payment UI."""

    async def pay(self, tokens: list[str]) -> None:
        """
        Run a payment for the given pay request tokens.

        Raises:
            PayError: If the platform reports a failed or cancelled payment
        """
        ...
