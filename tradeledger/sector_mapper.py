# tradeledger/sector_mapper.py
"""
Sector and region classification from a static master.

Used as the fallback classification when no manual weight table has been
stored for an instrument.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


UNCLASSIFIED = "Unclassified"

# Static sector mapping for common instruments
STATIC_SECTOR_MAP = {
    # Domestic
    "7203": "Automotive",
    "7267": "Automotive",
    "6758": "Technology",
    "6861": "Technology",
    "8035": "Semiconductors",
    "9984": "Telecom",
    "9432": "Telecom",
    "8306": "Finance",
    "8316": "Finance",
    "4502": "Healthcare",

    # US
    "AAPL": "Technology",
    "MSFT": "Technology",
    "GOOGL": "Technology",
    "NVDA": "Semiconductors",
    "AMZN": "E-Commerce",
    "JPM": "Finance",
    "TSLA": "Automotive",

    # ETFs
    "VOO": "US Large Cap",
    "VTI": "US Equity",
    "QQQ": "Technology",
    "VT": "Global Index",
}

# Keywords matched against instrument names (fund names mostly)
KEYWORD_SECTOR_MAP = {
    "全世界": "Global Index",
    "オール・カントリー": "Global Index",
    "全米": "US Equity",
    "NASDAQ": "Technology",
    "S&P": "US Large Cap",
    "新興国": "Emerging Markets",
    "債券": "Bonds",
    "REIT": "Real Estate",
    "リート": "Real Estate",
}

# Sector aliases for common industry names
INDUSTRY_TO_SECTOR = {
    "information technology": "Technology",
    "it": "Technology",
    "tech": "Technology",
    "financial services": "Finance",
    "banking": "Finance",
    "automotive": "Automotive",
    "auto": "Automotive",
    "telecommunications": "Telecom",
    "healthcare": "Healthcare",
    "pharma": "Healthcare",
    "real estate": "Real Estate",
    "reit": "Real Estate",
    "unclassified": UNCLASSIFIED,
}

# Market names that mean the domestic market
DOMESTIC_MARKETS = {"JP", "東証", "名証", "福証", "札証", "東京", "JASDAQ", "ＰＴＳ", "PTS"}


@dataclass
class SectorMaster:
    symbols: Dict[str, str] = field(default_factory=lambda: dict(STATIC_SECTOR_MAP))
    keywords: Dict[str, str] = field(default_factory=lambda: dict(KEYWORD_SECTOR_MAP))
    default_sector: str = UNCLASSIFIED

    def sector_for(self, symbol: Optional[str], name: Optional[str] = None) -> Optional[str]:
        """
        Sector for an instrument, or None if the master does not know it.

        Priority:
        1. Symbol (exact, then without an exchange suffix like ".T")
        2. First keyword contained in the name
        """
        if symbol:
            s = symbol.strip().upper()
            if s in self.symbols:
                return self.symbols[s]
            base = s.split(".")[0]
            if base in self.symbols:
                return self.symbols[base]

        if name:
            lowered = name.lower()
            for keyword, sector in self.keywords.items():
                if keyword and keyword.lower() in lowered:
                    return sector
        return None

    def assign_sector(self, symbol: Optional[str], name: Optional[str] = None) -> str:
        return self.sector_for(symbol, name) or self.default_sector


def normalize_sector_name(sector_input: Optional[str]) -> Optional[str]:
    """
    Normalize a user-provided sector/industry name.

    Args:
        sector_input: Raw sector or industry name

    Returns:
        Normalized sector name or None if empty
    """
    if not sector_input or not sector_input.strip():
        return None

    sector_lower = sector_input.strip().lower()
    if sector_lower in INDUSTRY_TO_SECTOR:
        return INDUSTRY_TO_SECTOR[sector_lower]
    return sector_input.strip()


def infer_region(market_or_key: Optional[str]) -> str:
    """
    Region from an instrument key ("JP:7203") or a bare market name.

    Domestic exchange names count as JP; funds are Unclassified since their
    holdings can be anywhere.
    """
    if not market_or_key:
        return "OTHER"
    market = market_or_key.split(":", 1)[0].strip()
    if market == "US":
        return "US"
    if market == "FUND":
        return UNCLASSIFIED
    if market in DOMESTIC_MARKETS or any(market.startswith(m) for m in DOMESTIC_MARKETS):
        return "JP"
    return "OTHER"
