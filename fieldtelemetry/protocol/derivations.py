"""Text labels derived from numeric sensor values.

Shared by the live frame decoder and the storage codec so that a stored
reading and a freshly decoded one carry identical labels.
"""

COMPASS_POINTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")

# (upper bound m/s, scale, condition); a speed of exactly 0 is "calm"
WIND_SCALE = (
    (0.2, "detection_limit", "Below sensor detection limit"),
    (1.5, "light_air", "Smoke drifts, vanes still"),
    (3.3, "light_breeze", "Wind felt on face, leaves rustle"),
    (5.4, "gentle_breeze", "Leaves and small twigs in motion"),
    (7.9, "moderate_breeze", "Dust and loose paper raised"),
    (10.7, "fresh_breeze", "Small trees begin to sway"),
    (13.8, "strong_breeze", "Large branches in motion"),
    (17.1, "near_gale", "Whole trees in motion"),
)

PRECIP_STATUS = {
    0: ("dry", "sunny"),
    1: ("rain", "rain"),
    2: ("snow", "snow"),
}


def compass_direction(gear: float, degree: float) -> str:
    """Return an 8-point compass label.

    The octant index wins when it is in 0..7; otherwise the degree value is
    bucketed into 45 degree sectors centred on north.
    """
    if 0 <= gear <= 7 and float(gear).is_integer():
        return COMPASS_POINTS[int(gear)]
    if degree < 0 or degree >= 337.5:
        return COMPASS_POINTS[0]
    sector = int((degree + 22.5) // 45)
    return COMPASS_POINTS[sector]


def wind_scale(speed_ms: float) -> tuple[str, str]:
    """Return (scale, condition) for a wind speed in m/s."""
    if speed_ms == 0:
        return "calm", "Calm, smoke rises vertically"
    for upper, scale, condition in WIND_SCALE:
        if speed_ms < upper:
            return scale, condition
    return "gale", "Twigs break off trees, walking is impeded"


def precipitation_status(status: int) -> tuple[str, str]:
    """Return (status text, icon tag) for a precipitation status code."""
    return PRECIP_STATUS.get(int(status), ("unknown", "unknown"))


def moisture_intensity(status: int, moisture: float) -> str:
    """Qualitative moisture label; thresholds depend on precipitating vs dry."""
    if status > 0:
        if moisture > 3000:
            return "heavy"
        if moisture > 1500:
            return "moderate"
        if moisture > 500:
            return "light"
        return "trace"
    if moisture > 500:
        return "residual"
    return "dry"


def temperature_status(temperature: float) -> str:
    """Comfort band for the precipitation sensor's air temperature."""
    if temperature >= 30:
        return "high"
    if temperature >= 20:
        return "optimal"
    if temperature >= 10:
        return "low"
    if temperature >= 0:
        return "very_low"
    return "freezing"
