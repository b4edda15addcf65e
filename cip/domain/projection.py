import math
from typing import Tuple

# SWEREF 99 TM on the GRS 80 ellipsoid
AXIS = 6378137.0
FLATTENING = 1.0 / 298.257222101
CENTRAL_MERIDIAN = 15.0
SCALE = 0.9996
FALSE_NORTHING = 0.0
FALSE_EASTING = 500000.0

def _series():
    e2 = FLATTENING * (2.0 - FLATTENING)
    n = FLATTENING / (2.0 - FLATTENING)

    a_roof = AXIS / (1.0 + n) * (1.0 + n**2 / 4.0 + n**4 / 64.0)

    deltas = (
        n / 2.0 - 2.0 * n**2 / 3.0 + 37.0 * n**3 / 96.0 - n**4 / 360.0,
        n**2 / 48.0 + n**3 / 15.0 - 437.0 * n**4 / 1440.0,
        17.0 * n**3 / 480.0 - 37.0 * n**4 / 840.0,
        4397.0 * n**4 / 161280.0,
    )

    a_star = e2 + e2**2 + e2**3 + e2**4
    b_star = -(7.0 * e2**2 + 17.0 * e2**3 + 30.0 * e2**4) / 6.0
    c_star = (224.0 * e2**3 + 889.0 * e2**4) / 120.0
    d_star = -(4279.0 * e2**4) / 1260.0

    return a_roof, deltas, (a_star, b_star, c_star, d_star)

_A_ROOF, _DELTAS, _STARS = _series()

def grid_to_geodetic(x: float, y: float) -> Tuple[float, float]:
    """
    Inverse Gauss-Krüger projection: grid coordinates -> WGS84 degrees.

    Args:
        x: northing in meters
        y: easting in meters

    Returns:
        (longitude, latitude) in decimal degrees
    """
    xi = (x - FALSE_NORTHING) / (SCALE * _A_ROOF)
    eta = (y - FALSE_EASTING) / (SCALE * _A_ROOF)

    xi_prim = xi
    eta_prim = eta
    for k, delta in enumerate(_DELTAS, start=1):
        m = 2.0 * k
        xi_prim -= delta * math.sin(m * xi) * math.cosh(m * eta)
        eta_prim -= delta * math.cos(m * xi) * math.sinh(m * eta)

    phi_star = math.asin(math.sin(xi_prim) / math.cosh(eta_prim))
    delta_lambda = math.atan(math.sinh(eta_prim) / math.cos(xi_prim))

    a_star, b_star, c_star, d_star = _STARS
    sin_phi = math.sin(phi_star)
    lat_rad = phi_star + sin_phi * math.cos(phi_star) * (
        a_star
        + b_star * sin_phi**2
        + c_star * sin_phi**4
        + d_star * sin_phi**6
    )

    lon = CENTRAL_MERIDIAN + math.degrees(delta_lambda)
    lat = math.degrees(lat_rad)
    return lon, lat
