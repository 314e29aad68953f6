"""Business profile models cached by the agent."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Product(BaseModel):
    """Catalogue entry offered by a business."""

    id: str
    name: str
    price: float = Field(default=0.0, ge=0.0)
    description: str = ""
    category: str = "general"
    stock: int | None = Field(default=None, ge=0)
    is_active: bool = True


class SocialMediaAccounts(BaseModel):
    """Handles of the channels the agent may publish to."""

    instagram: str | None = None
    facebook: str | None = None
    whatsapp: str | None = None
    tiktok: str | None = None


class AgentPreferences(BaseModel):
    """Per-business behaviour switches honoured by the decide stage."""

    tone: str = Field(default="casual", pattern="^(formal|casual|humorous|professional)$")
    language: str = Field(default="simple", pattern="^(technical|simple|local_slang)$")
    proactivity: str = Field(default="medium", pattern="^(high|medium|low)$")
    creativity: str = Field(default="balanced", pattern="^(conservative|balanced|experimental)$")
    auto_publish: bool = False
    max_daily_spend: float = Field(default=100.0, ge=0.0)


class BusinessProfile(BaseModel):
    """Root profile for one business served by the agent."""

    id: str
    name: str = "Local business"
    industry: str = "retail"
    location: str = ""
    target_audience: str = "General public"
    products: list[Product] = Field(default_factory=list)
    social_media: SocialMediaAccounts = Field(default_factory=SocialMediaAccounts)
    preferences: AgentPreferences = Field(default_factory=AgentPreferences)
    active: bool = True

    @classmethod
    def default_for(cls, business_id: str) -> BusinessProfile:
        """Profile used when the store knows nothing about a business."""
        return cls(id=business_id)
