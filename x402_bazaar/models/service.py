# x402_bazaar/models/service.py
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Categories recognized when deriving a service's category from its tags
CATEGORIES = [
    "ai", "data", "automation", "blockchain", "weather", "finance",
    "social", "image", "video", "audio", "search", "translation", "other",
]


class ServiceInfo(BaseModel):
    """
    A marketplace listing as returned by /api/services. Unknown fields from the
    upstream API are ignored; `title` is accepted as an alias of `name`.
    """
    model_config = ConfigDict(extra="ignore")

    name: str = Field("Unnamed Service", description="Display name of the service.")
    description: Optional[str] = None
    price: Decimal = Field(Decimal("0"), description="Price per call in USDC.")
    endpoint: Optional[str] = Field(None, description="Path or URL of the paid endpoint.")
    url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    chain: str = "base"

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v):
        # Upstream sends numbers, numeric strings or null
        if v is None or v == "":
            return Decimal("0")
        try:
            return Decimal(str(v))
        except InvalidOperation:
            return Decimal("0")

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v):
        if not isinstance(v, list):
            return []
        return [str(t) for t in v]

    @field_validator("chain", mode="before")
    @classmethod
    def default_chain(cls, v):
        return v or "base"

    @classmethod
    def from_api(cls, data: dict) -> "ServiceInfo":
        """Build from a raw API record, falling back to `title` for the name."""
        payload = dict(data)
        if not payload.get("name"):
            payload["name"] = payload.get("title") or "Unnamed Service"
        return cls.model_validate(payload)

    @property
    def category(self) -> str:
        for tag in self.tags:
            if tag.lower() in CATEGORIES:
                return tag.lower()
        return "other"

    @property
    def is_free(self) -> bool:
        return self.price == 0

    @property
    def price_label(self) -> str:
        return "FREE" if self.is_free else f"${self.price:.3f} USDC"

    @property
    def short_description(self) -> Optional[str]:
        """Description truncated to 80 characters for list output."""
        if not self.description:
            return None
        if len(self.description) > 80:
            return self.description[:77] + "..."
        return self.description

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "endpoint": self.endpoint or self.url,
            "category": self.category,
            "chain": self.chain,
            "is_free": self.is_free,
        }
