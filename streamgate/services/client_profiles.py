"""Impersonated player client identities for the upstream player API.

PROFILE PRIORITY
================
Profiles are ordered by how often they historically get playable URLs:
- Mobile app identities first (iOS, Android VR, Android): the upstream
  applies its strictest anti-automation checks to desktop fingerprints
- TV embedded player next: loose checks, but often missing formats
- Mobile web and desktop web last: frequently cipher-only URLs that need
  a signature solver, which this service does not run
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class ClientProfile:
    """One impersonated client identity. Immutable, shared across requests."""
    name: str
    client_name: str  # innertube clientName
    client_id: int  # X-YouTube-Client-Name
    protocol_version: str  # innertube clientVersion
    user_agent: str
    device_model: str = ""
    extra_headers: Tuple[Tuple[str, str], ...] = ()
    extra_context: Tuple[Tuple[str, object], ...] = ()

    def context(self, hl: str = "en", gl: str = "US") -> dict:
        """Build the `context.client` object for a request body."""
        client = {
            "clientName": self.client_name,
            "clientVersion": self.protocol_version,
            "hl": hl,
            "gl": gl,
            "userAgent": self.user_agent,
        }
        if self.device_model:
            client["deviceModel"] = self.device_model
        client.update(self.extra_context)
        return {"client": client}

    def headers(self) -> dict:
        """Identity headers sent with every request made as this client."""
        headers = {
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "X-YouTube-Client-Name": str(self.client_id),
            "X-YouTube-Client-Version": self.protocol_version,
        }
        headers.update(self.extra_headers)
        return headers


IOS = ClientProfile(
    name="ios",
    client_name="IOS",
    client_id=5,
    protocol_version="19.45.4",
    device_model="iPhone16,2",
    user_agent="com.google.ios.youtube/19.45.4 (iPhone16,2; U; CPU iOS 18_1_0 like Mac OS X;)",
    extra_context=(
        ("deviceMake", "Apple"),
        ("osName", "iPhone"),
        ("osVersion", "18.1.0.22B83"),
    ),
)

ANDROID_VR = ClientProfile(
    name="android_vr",
    client_name="ANDROID_VR",
    client_id=28,
    protocol_version="1.60.19",
    device_model="Quest 3",
    user_agent=(
        "com.google.android.apps.youtube.vr.oculus/1.60.19 "
        "(Linux; U; Android 12L; eureka-user Build/SQ3A.220605.009.A1) gzip"
    ),
    extra_context=(
        ("deviceMake", "Oculus"),
        ("osName", "Android"),
        ("osVersion", "12L"),
        ("androidSdkVersion", 32),
    ),
)

ANDROID = ClientProfile(
    name="android",
    client_name="ANDROID",
    client_id=3,
    protocol_version="19.44.38",
    user_agent="com.google.android.youtube/19.44.38 (Linux; U; Android 11) gzip",
    extra_context=(
        ("osName", "Android"),
        ("osVersion", "11"),
        ("androidSdkVersion", 30),
    ),
)

TV_EMBEDDED = ClientProfile(
    name="tv_embedded",
    client_name="TVHTML5_SIMPLY_EMBEDDED_PLAYER",
    client_id=85,
    protocol_version="2.0",
    user_agent=(
        "Mozilla/5.0 (PlayStation; PlayStation 4/12.00) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/15.4 Safari/605.1.15"
    ),
    extra_headers=(("Origin", "https://www.youtube.com"),),
)

MWEB = ClientProfile(
    name="mweb",
    client_name="MWEB",
    client_id=2,
    protocol_version="2.20241202.07.00",
    user_agent=(
        "Mozilla/5.0 (iPad; CPU OS 16_7_10 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1,gzip(gfe)"
    ),
    extra_headers=(("Origin", "https://m.youtube.com"),),
)

WEB = ClientProfile(
    name="web",
    client_name="WEB",
    client_id=1,
    protocol_version="2.20241126.01.00",
    user_agent=(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    extra_headers=(
        ("Origin", "https://www.youtube.com"),
        ("Referer", "https://www.youtube.com/"),
    ),
)

# Fixed priority order, most likely to succeed first
CLIENT_PROFILES: Tuple[ClientProfile, ...] = (IOS, ANDROID_VR, ANDROID, TV_EMBEDDED, MWEB, WEB)

# Listing pages are only served to the desktop web client
BROWSE_PROFILE = WEB


def get_profile(name: str) -> ClientProfile:
    """Look up a profile by name."""
    for profile in CLIENT_PROFILES:
        if profile.name == name:
            return profile
    raise KeyError(f"Unknown client profile: {name}")


def ordered_profiles(order: Optional[str] = None) -> Tuple[ClientProfile, ...]:
    """
    Get the profiles to try, in order.

    Args:
        order: Optional comma separated profile names. When given, only these
               profiles are used, in the given order.

    Returns:
        tuple of ClientProfile

    Raises:
        ValueError: If a name is not a known profile
    """
    if not order:
        return CLIENT_PROFILES

    names = [n.strip() for n in order.split(",") if n.strip()]
    try:
        return tuple(get_profile(n) for n in names)
    except KeyError as e:
        raise ValueError(str(e.args[0])) from e
