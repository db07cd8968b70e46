from __future__ import annotations

import logging
from typing import Sequence

import requests

from kasira.domain.errors import UpstreamUnavailableError
from kasira.domain.models import BranchPerformance, FinancialStats

log = logging.getLogger("kasira.insights")

PROMPT = """Anda adalah konsultan bisnis profesional untuk aplikasi KASIRA.
Analisis data performa bisnis UMKM berikut dan berikan 3-4 poin saran strategis yang singkat, padat, dan berorientasi pada hasil (actionable).

Data Periode: {period}
Statistik: Omzet Rp{revenue:,.0f}, Laba Bersih Rp{net_profit:,.0f}, Total Transaksi {orders}.
Cabang Terbaik: {best_branch} (Best Seller: {best_seller}).
Jumlah Produk: {products}.

Berikan analisis dalam Bahasa Indonesia yang profesional dan memotivasi. Gunakan format poin-poin."""


class InsightService:
    def __init__(self, api_key: str, model: str, url_template: str, timeout: float = 30):
        self.api_key = api_key
        self.model = model
        self.url_template = url_template
        self.timeout = timeout

    def build_prompt(
        self,
        period: str,
        stats: FinancialStats,
        branches: Sequence[BranchPerformance],
        product_count: int,
    ) -> str:
        ranked = sorted(branches, key=lambda b: b.net_profit, reverse=True)
        best = ranked[0] if ranked else None
        return PROMPT.format(
            period=period,
            revenue=stats.revenue,
            net_profit=stats.net_profit,
            orders=stats.order_count,
            best_branch=best.branch_name if best else "N/A",
            best_seller=best.best_seller if best else "N/A",
            products=product_count,
        )

    def _post(self, prompt: str) -> dict:
        r = requests.post(
            self.url_template.format(model=self.model),
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def _extract_text(self, data: dict) -> str:
        # {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
        if not isinstance(data, dict):
            raise UpstreamUnavailableError("Insight response was not a JSON object.")
        candidates = data.get("candidates") or []
        if not isinstance(candidates, list):
            raise UpstreamUnavailableError("Insight response had malformed candidates.")
        for candidate in candidates:
            content = candidate.get("content") if isinstance(candidate, dict) else None
            parts = content.get("parts") if isinstance(content, dict) else None
            if not isinstance(parts, list):
                continue
            text = "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict)).strip()
            if text:
                return text
        raise UpstreamUnavailableError("Insight response contained no text.")

    def analyse(
        self,
        period: str,
        stats: FinancialStats,
        branches: Sequence[BranchPerformance],
        product_count: int,
    ) -> str:
        if not self.api_key:
            raise UpstreamUnavailableError("Insight API key is not configured.")

        prompt = self.build_prompt(period, stats, branches, product_count)
        try:
            data = self._post(prompt)
        except (requests.RequestException, ValueError) as e:
            log.warning("insight_request_failed model=%s error=%s", self.model, e)
            raise UpstreamUnavailableError(f"Insight service unreachable: {e}") from e

        text = self._extract_text(data)
        log.info("insight_generated model=%s chars=%s", self.model, len(text))
        return text
