from typing import List, Literal

from pydantic import BaseModel, Field


class Sentiment(BaseModel):
    overall: Literal["positive", "negative", "neutral", "mixed"] = Field(
        description="Overall sentiment of the content"
    )
    confidence: float = Field(
        description="Confidence in the sentiment label (0-1)",
        ge=0,
        le=1,
    )
    details: str = Field(
        description="Short explanation of the sentiment assessment"
    )


class KeyTopic(BaseModel):
    """A topic discussed in the media, with where it comes up."""

    topic: str = Field(description="Topic name")
    relevance: float = Field(
        description="How central the topic is to the content (0-1)",
        ge=0,
        le=1,
    )
    timestamps: List[str] = Field(
        default_factory=list,
        description="Timestamps (MM:SS) where the topic is discussed"
    )


class EngagementAnalysis(BaseModel):
    hook_quality: Literal["strong", "moderate", "weak"] = Field(
        description="How well the opening captures attention"
    )
    pacing: Literal["fast", "moderate", "slow"] = Field(
        description="Overall pacing of the content"
    )
    retention_prediction: float = Field(
        description="Predicted fraction of viewers who watch to the end (0-1)",
        ge=0,
        le=1,
    )
    call_to_action: Literal["present", "absent"] = Field(
        description="Whether the content asks viewers to act"
    )
    engagement_score: float = Field(
        description="Overall engagement potential (0-10)",
        ge=0,
        le=10,
    )


class ContentInsights(BaseModel):
    target_audience: str = Field(description="Description of the likely audience")
    content_type: str = Field(
        description="educational, entertainment, promotional, etc."
    )
    complexity_level: Literal["beginner", "intermediate", "advanced"] = Field(
        description="How much prior knowledge the content assumes"
    )
    production_quality: Literal["high", "medium", "low"] = Field(
        description="Apparent production quality"
    )


class ContentAnalysis(BaseModel):
    """Structured AI analysis of a media item's transcript and metadata."""

    summary: str = Field(
        description="Brief summary of the content",
        min_length=10,  # Lenient: Gemini doesn't always respect constraints
        max_length=2000
    )
    themes: List[str] = Field(
        description="Main themes identified"
    )
    sentiment: Sentiment
    key_topics: List[KeyTopic] = Field(
        description="Key topics, most relevant first"
    )
    engagement_analysis: EngagementAnalysis
    content_insights: ContentInsights
    optimization_suggestions: List[str] = Field(
        description="Specific, actionable recommendations"
    )
    tags_suggestions: List[str] = Field(
        description="Relevant tags for categorization"
    )
    strengths: List[str] = Field(description="What works well")
    weaknesses: List[str] = Field(description="Areas for improvement")
