"""Funding sources for FlowPay."""

from flowpay.funding.sources import FundingSourceService

__all__ = ["FundingSourceService"]
