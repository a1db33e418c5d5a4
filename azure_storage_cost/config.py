#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
config.py

Configuration constants and defaults for the storage cost engine.

Every value can be overridden through an environment variable. Functions that
depend on one of these constants also accept an explicit keyword argument, so
callers (and tests) rarely need to touch the environment.

Key idea: one billing month = 720 hours
---------------------------------------
Storage meters are published either per hour or per month. All formulas work
in hourly rates and multiply by the billing-period length in hours, with a
month normalized to 30 days x 24 hours. Monthly prices are divided by
HOURS_PER_MONTH to become hourly rates.
"""

import os  # Standard library: access environment variables (os.getenv).

# ---------------------------------------------------------------------
# Azure Retail Prices API
# ---------------------------------------------------------------------
# Public, unauthenticated endpoint returning retail price rows.
RETAIL_API_URL = os.getenv("AZSTORAGECOST_RETAIL_API_URL", "https://prices.azure.com/api/retail/prices")

# RETAIL_MAX_PAGES:
# - Upper bound on NextPageLink hops per query.
# - Storage queries are narrow (service + product + sku + region) and rarely
#   exceed one page; the cap protects against runaway pagination.
RETAIL_MAX_PAGES = int(os.getenv("AZSTORAGECOST_RETAIL_MAX_PAGES", "5"))

# ---------------------------------------------------------------------
# Defaults: region / currency
# ---------------------------------------------------------------------
# DEFAULT_REGION:
# - Used when a resource record carries no region.
# - ARM region name, e.g. "eastus", "westeurope".
DEFAULT_REGION = os.getenv("AZSTORAGECOST_DEFAULT_REGION", "eastus")

# DEFAULT_CURRENCY:
# - Passed to the Retail API as currencyCode.
DEFAULT_CURRENCY = os.getenv("AZSTORAGECOST_DEFAULT_CURRENCY", "USD")

# ---------------------------------------------------------------------
# Billing period
# ---------------------------------------------------------------------
# HOURS_PER_MONTH:
# - 30 days * 24 hours. Monthly prices are converted to hourly with this.
HOURS_PER_MONTH = 720

# DEFAULT_PERIOD_DAYS:
# - Default analysis window. period_hours = DEFAULT_PERIOD_DAYS * 24.
DEFAULT_PERIOD_DAYS = int(os.getenv("AZSTORAGECOST_PERIOD_DAYS", "30"))

# ---------------------------------------------------------------------
# Price cache
# ---------------------------------------------------------------------
# CACHE_FILE:
# - JSON file with the persisted price cache: {region: {meterKey: entry}}.
# - Safe to delete; a cold cache only means more Retail API calls.
CACHE_FILE = os.getenv("AZSTORAGECOST_CACHE_FILE", "azure_storage_price_cache.json")

# PRICE_CACHE_TTL_DAYS:
# - Lifetime of a retail price row in the cache.
PRICE_CACHE_TTL_DAYS = float(os.getenv("AZSTORAGECOST_PRICE_CACHE_TTL_DAYS", "7"))

# REGIONAL_DEFAULTS_TTL_HOURS:
# - Lifetime of a regional default-price snapshot (coarse fallback table).
REGIONAL_DEFAULTS_TTL_HOURS = float(os.getenv("AZSTORAGECOST_REGIONAL_DEFAULTS_TTL_HOURS", "6"))

# ---------------------------------------------------------------------
# HTTP behaviour for price fetches
# ---------------------------------------------------------------------
# Total timeout per request and connect timeout, in seconds.
PRICE_FETCH_TIMEOUT_SECONDS = float(os.getenv("AZSTORAGECOST_FETCH_TIMEOUT", "20"))
PRICE_FETCH_CONNECT_TIMEOUT_SECONDS = float(os.getenv("AZSTORAGECOST_FETCH_CONNECT_TIMEOUT", "5"))

# Retries on timeout / transport error / 429 / 5xx, with exponential backoff.
PRICE_FETCH_MAX_RETRIES = int(os.getenv("AZSTORAGECOST_FETCH_MAX_RETRIES", "3"))
PRICE_FETCH_BASE_DELAY = float(os.getenv("AZSTORAGECOST_FETCH_BASE_DELAY", "0.5"))
PRICE_FETCH_MAX_DELAY = float(os.getenv("AZSTORAGECOST_FETCH_MAX_DELAY", "8"))

# ---------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------
# FORECAST_MIN_SAMPLES:
# - Below this many daily samples the trend is reported as Stable and the
#   confidence is capped low.
FORECAST_MIN_SAMPLES = int(os.getenv("AZSTORAGECOST_FORECAST_MIN_SAMPLES", "7"))

# FORECAST_MAX_CONFIDENCE:
# - Saturation point of the forecast confidence score.
FORECAST_MAX_CONFIDENCE = float(os.getenv("AZSTORAGECOST_FORECAST_MAX_CONFIDENCE", "95"))

# FORECAST_HORIZON_DAYS:
# - Length of the projected window.
FORECAST_HORIZON_DAYS = int(os.getenv("AZSTORAGECOST_FORECAST_HORIZON_DAYS", "30"))

# ---------------------------------------------------------------------
# Actual billing (optional)
# ---------------------------------------------------------------------
COST_MANAGEMENT_URL = os.getenv("AZSTORAGECOST_COST_MANAGEMENT_URL", "https://management.azure.com")
COST_MANAGEMENT_API_VERSION = os.getenv("AZSTORAGECOST_COST_MANAGEMENT_API_VERSION", "2023-03-01")

# ---------------------------------------------------------------------
# Cool data assumptions
# ---------------------------------------------------------------------
# Used for cool-access volumes when no cool-tier metrics are available.
DEFAULT_COOL_DATA_PERCENT = float(os.getenv("AZSTORAGECOST_COOL_DATA_PERCENT", "80"))
DEFAULT_COOL_RETRIEVAL_PERCENT = float(os.getenv("AZSTORAGECOST_COOL_RETRIEVAL_PERCENT", "15"))

# ---------------------------------------------------------------------
# Optional JSONL trace
# ---------------------------------------------------------------------
# TRACE_FILE:
# - If set, resolver and engine phases are appended here as JSON lines.
TRACE_FILE = os.getenv("AZSTORAGECOST_TRACE_FILE", "")
