# whatif_engine/plan_store_client.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import requests

from debug import *
from whatif_engine.holdings import HoldingsSplit
from whatif_engine.plan_types import (
    ErrorKind,
    PlanAssumptions,
    PlanDataError,
    RetirementProjection,
)

DEFAULT_TIMEOUT = 10


@dataclass(frozen=True)
class ProjectionRequest:
    liquid_assets: float
    non_spendable_assets: float
    currency: str
    retirement_age: int
    life_expectancy: int
    monthly_contribution: float
    current_age: Optional[int] = None
    portfolio_ids: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "liquidAssets": self.liquid_assets,
            "nonSpendableAssets": self.non_spendable_assets,
            "portfolioIds": list(self.portfolio_ids),
            "currency": self.currency,
            "currentAge": self.current_age,
            "retirementAge": self.retirement_age,
            "lifeExpectancy": self.life_expectancy,
            "monthlyContribution": self.monthly_contribution,
        }


def build_projection_request(plan: PlanAssumptions, split: HoldingsSplit,
                             portfolio_ids=()) -> ProjectionRequest:
    return ProjectionRequest(
        liquid_assets=split.liquid_assets,
        non_spendable_assets=split.non_spendable_assets,
        currency=plan.expenses_currency,
        current_age=plan.current_age,
        retirement_age=plan.retirement_age,
        life_expectancy=plan.life_expectancy,
        monthly_contribution=plan.monthly_investment,
        portfolio_ids=tuple(portfolio_ids),
    )


class _JsonApi:
    """Shared request/response handling for the plan-store endpoints."""

    def __init__(self, base_url: str, session=None, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _call(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        debug(VERBOSE, "{} {}", method, url)
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            debug(ERROR, "{} {} failed: {}", method, url, e)
            raise PlanDataError(ErrorKind.NETWORK, f"{method} {url} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise PlanDataError(ErrorKind.MALFORMED_RESPONSE,
                                f"{method} {url}: response is not JSON") from e
        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise PlanDataError(ErrorKind.MALFORMED_RESPONSE,
                                f"{method} {url}: expected an object with a 'data' object")
        return body["data"]


class BaseProjectionClient(_JsonApi):
    """Fetches the as-planned projection computed by the projection service."""

    def compute(self, plan_id: str, request: ProjectionRequest) -> RetirementProjection:
        data = self._call("POST", f"/projection/{plan_id}", request.to_dict())
        try:
            projection = RetirementProjection.from_dict(data)
        except PlanDataError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise PlanDataError(ErrorKind.MALFORMED_RESPONSE,
                                f"projection for plan {plan_id} could not be read: {e}") from e
        debug(INFO, "Base projection for plan {}: {} years, runway {}",
              plan_id, len(projection.yearly_projections), projection.runway_years)
        return projection


class PlanStoreClient(_JsonApi):
    """Reads and writes persisted plans."""

    def _plan(self, data: dict) -> PlanAssumptions:
        try:
            return PlanAssumptions.from_dict(data)
        except PlanDataError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise PlanDataError(ErrorKind.MALFORMED_RESPONSE, f"plan could not be read: {e}") from e

    def get(self, plan_id: str) -> PlanAssumptions:
        return self._plan(self._call("GET", f"/plans/{plan_id}"))

    def update(self, plan_id: str, partial_plan: dict) -> PlanAssumptions:
        return self._plan(self._call("PATCH", f"/plans/{plan_id}", partial_plan))

    def create_fork(self, new_plan: dict) -> PlanAssumptions:
        return self._plan(self._call("POST", "/plans", new_plan))
