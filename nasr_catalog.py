"""
Static domain facts for the NASR CSV subscription.

The relationship table and the sentinel-null table are plain data so they can
be reviewed, tested and extended without touching the builder. Nothing here is
discovered at run time.
"""
from __future__ import annotations

from typing import Dict, List, Tuple


# (child table, key columns, parent table). Key columns carry the same names on
# both sides of the relationship.
RELATIONSHIPS: List[Tuple[str, Tuple[str, ...], str]] = [
    ("APT_RWY", ("SITE_NO",), "APT_BASE"),
    ("APT_RWY_END", ("SITE_NO", "RWY_ID"), "APT_RWY"),
    ("APT_ARS", ("SITE_NO", "RWY_ID", "RWY_END_ID"), "APT_RWY_END"),
    ("APT_ATT", ("SITE_NO",), "APT_BASE"),
    ("APT_CON", ("SITE_NO",), "APT_BASE"),
    ("APT_RMK", ("SITE_NO",), "APT_BASE"),
    ("NAV_CKPT", ("NAV_ID", "NAV_TYPE"), "NAV_BASE"),
    ("NAV_RMK", ("NAV_ID", "NAV_TYPE"), "NAV_BASE"),
    ("FIX_CHRT", ("FIX_ID", "ICAO_REGION_CODE"), "FIX_BASE"),
    ("FIX_NAV", ("FIX_ID", "ICAO_REGION_CODE"), "FIX_BASE"),
    ("AWY_SEG_ALT", ("AWY_ID",), "AWY_BASE"),
    ("ILS_GS", ("SITE_NO", "RWY_END_ID", "ILS_LOC_ID"), "ILS_BASE"),
    ("ILS_DME", ("SITE_NO", "RWY_END_ID", "ILS_LOC_ID"), "ILS_BASE"),
    ("ILS_MKR", ("SITE_NO", "RWY_END_ID", "ILS_LOC_ID"), "ILS_BASE"),
    ("ILS_RMK", ("SITE_NO", "RWY_END_ID", "ILS_LOC_ID"), "ILS_BASE"),
    ("ATC_SVC", ("FACILITY_ID", "FACILITY_TYPE"), "ATC_BASE"),
    ("ATC_ATIS", ("FACILITY_ID", "FACILITY_TYPE"), "ATC_BASE"),
    ("ATC_RMK", ("FACILITY_ID", "FACILITY_TYPE"), "ATC_BASE"),
    ("STAR_APT", ("STAR_COMPUTER_CODE",), "STAR_BASE"),
    ("STAR_RTE", ("STAR_COMPUTER_CODE",), "STAR_BASE"),
    ("DP_APT", ("DP_COMPUTER_CODE",), "DP_BASE"),
    ("DP_RTE", ("DP_COMPUTER_CODE",), "DP_BASE"),
    ("HPF_SPD_ALT", ("HP_NAME", "HP_NO"), "HPF_BASE"),
    ("HPF_CHRT", ("HP_NAME", "HP_NO"), "HPF_BASE"),
    ("HPF_RMK", ("HP_NAME", "HP_NO"), "HPF_BASE"),
    ("PFR_SEG", ("ORIGIN_ID", "DSTN_ID", "PFR_TYPE_CODE", "ROUTE_NO"), "PFR_BASE"),
    ("MTR_PT", ("ROUTE_TYPE_CODE", "ROUTE_ID"), "MTR_BASE"),
    ("MTR_AGY", ("ROUTE_TYPE_CODE", "ROUTE_ID"), "MTR_BASE"),
    ("MTR_SOP", ("ROUTE_TYPE_CODE", "ROUTE_ID"), "MTR_BASE"),
    ("MTR_TERR", ("ROUTE_TYPE_CODE", "ROUTE_ID"), "MTR_BASE"),
    ("MTR_WDTH", ("ROUTE_TYPE_CODE", "ROUTE_ID"), "MTR_BASE"),
    ("ARB_SEG", ("LOCATION_ID",), "ARB_BASE"),
    ("WXL_SVC", ("WEA_ID",), "WXL_BASE"),
    ("MAA_SHP", ("MAA_ID",), "MAA_BASE"),
    ("MAA_RMK", ("MAA_ID",), "MAA_BASE"),
    ("MAA_CON", ("MAA_ID",), "MAA_BASE"),
    ("PJA_CON", ("PJA_ID",), "PJA_BASE"),
    ("FSS_RMK", ("FSS_ID",), "FSS_BASE"),
]


# (table, column) -> literal used by the FAA in place of NULL. These columns are
# declared NOT NULL in the structure files but carry the placeholder instead.
SENTINEL_NULLS: Dict[Tuple[str, str], str] = {
    ("DP_BASE", "DP_COMPUTER_CODE"): "NOT ASSIGNED",
}
