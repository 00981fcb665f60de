from __future__ import annotations
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pandas as pd
import requests

from mapvid.core.base import Context, Record, Source
from mapvid.core.utils import retry
from plugins.incidence.regions import state_id_by_abbreviation

UA = "mapvid-incidence-pipeline"


def _resolve(ctx: Context, path: str | Path) -> Path:
    p = Path(path)
    return p if p.is_absolute() else Path(ctx.workdir) / p


def _region_key(key: Any, by_abbreviation: bool) -> str:
    if by_abbreviation:
        state_id = state_id_by_abbreviation(str(key))
        if state_id is None:
            raise KeyError(f"Unknown state abbreviation: {key!r}")
        return str(state_id)
    return str(key)


def daily_table(cases: pd.DataFrame) -> pd.DataFrame:
    """Long region/date/cases rows → one column per region over a contiguous
    daily index. Duplicate days are summed, unreported days become 0."""
    cases = cases.assign(
        date=pd.to_datetime(cases["date"]).dt.normalize(),
        cases=pd.to_numeric(cases["cases"], errors="coerce").fillna(0),
    )
    days = pd.date_range(cases["date"].min(), cases["date"].max(), freq="D")
    return (
        cases.pivot_table(index="date", columns="region", values="cases", aggfunc="sum")
        .reindex(days)
        .fillna(0)
    )


def history_of(table: pd.DataFrame, key: str) -> List[Dict[str, Any]]:
    return [{"date": d.date().isoformat(), "cases": float(v)} for d, v in table[key].items()]


# ---------- CSV ----------
class CsvCaseHistorySource(Source):
    """
    Region case histories from local CSV files.

    kw:
      cases: long-format CSV with columns region,date,cases
      populations: CSV with columns region,population[,name]
      states_by_abbreviation: map "BY" style region keys to state ids (default False)

    Days a region did not report are filled with 0 cases so every region
    covers the same contiguous date range.
    """

    def _cases(self, ctx: Context) -> pd.DataFrame:
        df = pd.read_csv(_resolve(ctx, self.kw["cases"]), dtype={"region": str})
        missing = {"region", "date", "cases"} - set(df.columns)
        if missing:
            raise ValueError(f"cases CSV lacks columns: {', '.join(sorted(missing))}")
        return df

    def reference_date(self, ctx: Context) -> date:
        df = pd.read_csv(_resolve(ctx, self.kw["cases"]), usecols=["date"])
        return pd.to_datetime(df["date"]).max().date()

    def run(self, ctx: Context) -> Iterator[Record]:
        by_abbr = bool(self.kw.get("states_by_abbreviation", False))
        cases = self._cases(ctx)
        pops = pd.read_csv(_resolve(ctx, self.kw["populations"]), dtype={"region": str})
        pops = pops.set_index("region")

        table = daily_table(cases)
        ctx.log.info(f"Loaded {table.shape[1]} regions x {len(table)} days of cases")
        for key in table.columns:
            if key not in pops.index:
                raise KeyError(f"No population for region {key!r}")
            row = pops.loc[key]
            yield {
                "region": _region_key(key, by_abbr),
                "name": str(row.get("name", key)),
                "population": float(row["population"]),
                "history": history_of(table, key),
            }


# ---------- HTTP ----------
class HttpCaseHistorySource(Source):
    """
    Region case histories from a JSON statistics API.

    Expected endpoints (relative to base_url):
      /meta                      {"lastUpdate": "2021-03-15T00:00:00Z"}
      /{region}                  {"data": {key: {"population": ..., "name": ...}}}
      /{region}/history/cases    {"data": {key: {"history": [{"cases": n, "date": iso}]}}}

    kw:
      base_url: API root
      region: "districts" | "states" (states are keyed by abbreviation)
      timeout: request timeout in seconds (default 30)
    """

    def _url(self, *parts: str) -> str:
        return "/".join([self.kw["base_url"].rstrip("/"), *parts])

    @retry(tries=3, delay=1.0, allowed_exceptions=(requests.RequestException,))
    def _get_json(self, url: str) -> Dict[str, Any]:
        r = requests.get(url, headers={"User-Agent": UA}, timeout=float(self.kw.get("timeout", 30)))
        r.raise_for_status()
        return r.json()

    def reference_date(self, ctx: Context) -> date:
        meta = self._get_json(self._url("meta"))
        return date.fromisoformat(str(meta["lastUpdate"])[:10]) - timedelta(days=1)

    def run(self, ctx: Context) -> Iterator[Record]:
        region = self.kw.get("region", "districts")
        by_abbr = region == "states"
        regions = self._get_json(self._url(region))["data"]
        histories = self._get_json(self._url(region, "history", "cases"))["data"]
        ctx.log.info(f"Fetched {len(histories)} {region} histories from {self.kw['base_url']}")
        # timestamps are day-aligned; keep the calendar day only
        cases = pd.DataFrame(
            [
                {"region": str(key), "date": str(h["date"])[:10], "cases": h["cases"]}
                for key, entry in histories.items()
                for h in entry["history"]
            ],
            columns=["region", "date", "cases"],
        )
        if cases.empty:
            return
        table = daily_table(cases)
        for key in histories:
            info: Optional[Dict[str, Any]] = regions.get(key)
            if info is None:
                raise KeyError(f"No population for {region} {key!r}")
            yield {
                "region": _region_key(key, by_abbr),
                "name": info.get("name", key),
                "population": float(info["population"]),
                "history": history_of(table, str(key)) if str(key) in table.columns else [],
            }
