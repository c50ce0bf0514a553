# API endpoint paths for the Enphase IQ Gateway (Envoy), relative to its base address

# Authentication
ENDPOINT_AUTH_CHECK_JWT = "/auth/check_jwt"

# Meter reports (production + consumption, with per-line breakdown)
ENDPOINT_PRODUCTION_REPORT = "/ivp/meters/reports/production"
ENDPOINT_CONSUMPTION_REPORT = "/ivp/meters/reports/consumption"

# Meters
ENDPOINT_METER_READINGS = "/ivp/meters/readings"

# Inverters
ENDPOINT_INVERTERS = "/api/v1/production/inverters"

# Enlighten cloud - used only to mint a token from username/password
ENLIGHTEN_LOGIN_URL = "https://enlighten.enphaseenergy.com/login/login.json"
ENLIGHTEN_TOKEN_URL = "https://entrez.enphaseenergy.com/tokens"
