# app/services/bid_validator.py
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from app.domain.enums import ListingStatus
from app.domain.errors import (
    BidTooLowError,
    InvalidBidAmountError,
    ListingNotBiddableError,
)
from app.domain.schemas import Bid, BidCreate, Listing
from app.services.backend_client import BackendClient
from app.utils.logging import get_logger

logger = get_logger(__name__)

_AMOUNT_RE = re.compile(r"^(\d+(\.\d{1,2})?|\.\d{1,2})$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_CENTS = Decimal("0.01")


def is_valid_uuid(value: object) -> bool:
    """36 znakow hex w segmentach 8-4-4-4-12."""
    if not isinstance(value, str):
        return False
    return _UUID_RE.match(value.strip()) is not None


def parse_amount(raw: object) -> Decimal:
    """Dodatnia liczba dziesietna, max 2 miejsca po przecinku."""
    text = str(raw).strip() if raw is not None else ""
    if not _AMOUNT_RE.match(text):
        raise InvalidBidAmountError(text)
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise InvalidBidAmountError(text)
    if amount <= 0:
        raise InvalidBidAmountError(text)
    return amount


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(_CENTS))


@dataclass(frozen=True)
class BidProposal:
    listing_id: str
    amount: str
    minimum: str


class BidValidator:
    """
    Walidacja oferty przed wyslaniem do backendu.
    Odrzucenie lokalne = brak wywolania sieciowego.
    """

    def __init__(self, backend: BackendClient | None = None):
        self.backend = backend

    def validate(
        self,
        amount: object,
        listing: Listing,
        current_high_bid: Decimal | str | None = None,
        now: datetime | None = None,
    ) -> BidProposal:
        value = parse_amount(amount)

        if listing.status != ListingStatus.ACTIVE:
            raise ListingNotBiddableError(listing.id, f"status is {listing.status.value}")

        if not listing.is_biddable:
            raise ListingNotBiddableError(listing.id, "listing is not biddable")

        # wygasla oferta, nawet jesli backend nie zdazyl zmienic statusu
        if listing.expires_at is not None:
            expires = listing.expires_at
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=timezone.utc)
            if expires <= (now or datetime.now(timezone.utc)):
                raise ListingNotBiddableError(listing.id, "listing has expired")

        floor = Decimal(str(current_high_bid)) if current_high_bid is not None else listing.starting_price
        if value <= floor:
            raise BidTooLowError(format_amount(value), format_amount(floor))

        return BidProposal(
            listing_id=listing.id,
            amount=format_amount(value),
            minimum=format_amount(floor),
        )

    def build_request(self, proposal: BidProposal, bidder_company_id: str | None = None) -> BidCreate:
        bid = BidCreate(listing_id=proposal.listing_id, amount=proposal.amount)

        # niepoprawne id firmy pomijamy po cichu, request ma byc poprawny
        if is_valid_uuid(bidder_company_id):
            bid.bidder_company_id = bidder_company_id.strip()
        elif bidder_company_id:
            logger.info(f"Dropping malformed bidder company id for listing {proposal.listing_id}")

        return bid

    def place(
        self,
        amount: object,
        listing: Listing,
        current_high_bid: Decimal | str | None = None,
        bidder_company_id: str | None = None,
    ) -> Bid:
        """Waliduje i wysyla oferte, jedna proba na zgloszenie uzytkownika."""
        if self.backend is None:
            raise RuntimeError("BidValidator has no backend client configured")

        proposal = self.validate(amount, listing, current_high_bid)
        request = self.build_request(proposal, bidder_company_id)

        logger.info(f"Submitting bid {request.amount} on listing {listing.id}")
        return self.backend.create_bid(request)


def highest_bid(bids: list[Bid]) -> Decimal | None:
    if not bids:
        return None
    return max(b.amount for b in bids)
