# Entity id prefixes
FACILITY_ID_PREFIX = "se:sundsvall:facilities:"
ORGANISATION_URN = "urn:ngsi-ld:Organisation:se:sundsvall:facilities:org:{}"
DEVICE_URN_PREFIX = "urn:ngsi-ld:Device:"
SENSOR_PREFIX = "se:servanet:lora:"

BEACH_TYPE = "Beach"
EXERCISE_TRAIL_TYPE = "ExerciseTrail"
SPORTS_FIELD_TYPE = "SportsField"
SPORTS_VENUE_TYPE = "SportsVenue"
CITY_WORK_TYPE = "CityWork"

NGSI_LD_CONTEXT = "https://uri.etsi.org/ngsi-ld/v1/ngsi-ld-core-context.jsonld"

# Deletion window: deletes/unpublishes older than this are never sent
DELETION_WINDOW_DAYS = 30

# Broker politeness
THROTTLE_S = 0.1          # after every merge attempt
BROKER_RECOVERY_S = 10.0  # after a merge failure other than "not found"

# Timeouts (all broker calls share one deadline)
BROKER_TIMEOUT_S = 10
FEED_TIMEOUT_S = 30

# Polling defaults
FACILITIES_INTERVAL_MIN = 58
FACILITIES_RETRY_MIN = 2
CITYWORK_INTERVAL_S = 59
TRAIL_PREPARATION_INTERVAL_MIN = 15

USER_AGENT = "cip-sdl-sync"
