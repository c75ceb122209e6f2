"""Fingerprint panel evaluators for risk-intel.

Each evaluator scores one aspect of a client (browser, location, IP,
hardware, software) independently. Evaluators are pure functions: they
start from 100, subtract a fixed penalty per anomaly and explain every
finding with a ``DetailedSignal``.
"""

import re
from typing import Optional

from risk_intel.models import EnhancedPanelResult, FingerprintPayload, NormalizedIpInsight, SignalImpact
from risk_intel.scoring import PanelScorer

AUTOMATION_UA = re.compile(r"Headless|bot|spider|crawler|phantomjs|selenium", re.IGNORECASE)
CHROME_VERSION = re.compile(r"Chrome/(\d+\.\d+)")
HOSTING_NETWORK = re.compile(r"hosting|datacenter|cloud", re.IGNORECASE)
MOBILE_NETWORK = re.compile(r"mobile|cellular", re.IGNORECASE)
ISP_NETWORK = re.compile(r"isp|broadband", re.IGNORECASE)
HOSTING_ORG = re.compile(r"vpn|proxy|hosting|cloud|server", re.IGNORECASE)

# Languages expected as primary language per timezone region
REGION_LANGUAGES = {
    "America": re.compile(r"en|es|fr|pt"),
    "Europe": re.compile(r"en|de|fr|it|es|nl|pl"),
    "Asia": re.compile(r"en|zh|ja|ko|hi|ar|th|vi"),
}

HIGH_ASN_THRESHOLD = 200000


def _platform_mismatch(platform: str, user_agent: str) -> bool:
    return (
        ("Linux" in platform and re.search(r"Windows|Mac", user_agent) is not None)
        or ("Windows" in platform and re.search(r"Linux|Mac", user_agent) is not None)
        or ("Mac" in platform and re.search(r"Windows|Linux", user_agent) is not None)
    )


def evaluate_browser(fingerprint: FingerprintPayload) -> EnhancedPanelResult:
    """Check the user agent, languages, platform, hardware and permissions."""
    panel = PanelScorer(
        {"userAgent": 25, "languages": 15, "platform": 20, "hardware": 20, "permissions": 20},
        base_confidence=90,
    )
    ua = fingerprint.user_agent or ""

    if AUTOMATION_UA.search(ua):
        panel.penalize(
            "userAgent", 40,
            "User-Agent indicates automation/headless context",
            SignalImpact.CRITICAL,
            "Your User-Agent string contains patterns commonly associated with automated browsers, "
            "bots, or headless environments.",
            "Use a standard browser configuration with typical User-Agent headers.",
        )

    chrome = CHROME_VERSION.search(ua)
    if chrome:
        version = float(chrome.group(1))
        if version < 90:
            panel.penalize(
                "userAgent", 15,
                "Outdated Chrome version detected",
                SignalImpact.MEDIUM,
                f"Chrome {version:g} is significantly outdated. Most users run recent versions.",
                "Update to the latest Chrome version for better compatibility and security.",
            )

    languages = fingerprint.languages or []
    if len(languages) > 5:
        panel.penalize(
            "languages", 12,
            "Unusual number of preferred languages",
            SignalImpact.MEDIUM,
            f"Most users have 1-3 preferred languages. You have {len(languages)}.",
            "Configure your browser with 1-3 primary languages that match your location.",
        )

    has_english = any(lang.startswith("en") for lang in languages)
    has_chinese = any(lang.startswith("zh") for lang in languages)
    if has_english and has_chinese:
        panel.penalize(
            "languages", 8,
            "Mixed language preferences may seem inconsistent",
            SignalImpact.LOW,
            "Having both English and Chinese as preferred languages is less common.",
            "Consider using languages that align with your target region.",
        )

    if fingerprint.platform and ua and _platform_mismatch(fingerprint.platform, ua):
        panel.penalize(
            "platform", 25,
            "Platform mismatch between navigator.platform and User-Agent",
            SignalImpact.HIGH,
            f'Platform reported as "{fingerprint.platform}" but User-Agent suggests a different OS.',
            "Ensure your browser configuration reports consistent platform information.",
        )

    cores = fingerprint.hardware_concurrency
    if cores:
        if cores > 128:
            panel.penalize(
                "hardware", 15,
                "Unusually high CPU core count reported",
                SignalImpact.MEDIUM,
                f"{cores} CPU cores exceeds typical consumer hardware.",
                "This may indicate virtualization or unusual hardware configuration.",
            )
        elif cores < 2:
            panel.penalize(
                "hardware", 10,
                "Very low CPU core count reported",
                SignalImpact.LOW,
                f"{cores} CPU cores is unusual for modern devices.",
                "This may indicate resource constraints or configuration issues.",
            )

    screen = fingerprint.screen
    if screen is not None:
        if screen.width * screen.height < 800 * 600:
            panel.penalize(
                "hardware", 8,
                "Unusually low screen resolution",
                SignalImpact.LOW,
                f"{screen.width}x{screen.height} is below typical modern screen resolutions.",
                "Use a standard screen resolution for your device type.",
            )
        ratio = screen.pixel_ratio
        if ratio and (ratio < 1 or ratio > 4):
            panel.penalize(
                "hardware", 5,
                "Unusual device pixel ratio",
                SignalImpact.LOW,
                f"Pixel ratio of {ratio:g} is uncommon for typical devices.",
                "Standard pixel ratios are 1, 1.25, 1.5, 2, 2.5, 3, or 4.",
            )

    permissions = fingerprint.permissions or []
    if permissions:
        denied = sum(1 for p in permissions if p.state == "denied")
        if denied / len(permissions) > 0.7:
            panel.penalize(
                "permissions", 10,
                "High number of denied browser permissions",
                SignalImpact.LOW,
                f"{denied} of {len(permissions)} permissions are denied, which may indicate "
                "privacy-focused configuration.",
                "Consider allowing essential permissions for better functionality.",
            )

    return panel.result([
        ua,
        *languages,
        fingerprint.platform or "",
        str(cores) if cores else "",
        f"{screen.width if screen else 0}x{screen.height if screen else 0}",
    ])


def evaluate_location(fingerprint: FingerprintPayload, ip_timezone: Optional[str] = None) -> EnhancedPanelResult:
    """Check timezone, locale and geolocation consistency against the IP."""
    panel = PanelScorer({"timezone": 40, "locale": 30, "geolocation": 30}, base_confidence=85)

    if fingerprint.timezone:
        if ip_timezone and fingerprint.timezone != ip_timezone:
            panel.penalize(
                "timezone", 45,
                "System timezone does not match IP timezone",
                SignalImpact.HIGH,
                f'Your system timezone is "{fingerprint.timezone}" but your IP suggests "{ip_timezone}".',
                "Align your system timezone with your IP location for better consistency.",
            )
        else:
            panel.note(
                "Timezone matches IP location",
                "Your system timezone is consistent with your IP location.",
                "Good consistency detected.",
            )
    else:
        panel.penalize(
            "timezone", 15,
            "Missing timezone data",
            SignalImpact.MEDIUM,
            "Unable to detect your system timezone.",
            "Ensure timezone access is not blocked by privacy settings.",
        )

    if fingerprint.languages and fingerprint.timezone:
        primary = fingerprint.languages[0]
        region = fingerprint.timezone.split("/")[0]
        expected = REGION_LANGUAGES.get(region)
        if expected is not None and not expected.search(primary):
            panel.penalize(
                "locale", 20,
                "Primary language may not match timezone region",
                SignalImpact.MEDIUM,
                f'Primary language "{primary}" may be unusual for timezone region "{region}".',
                "Consider using a language more common in your timezone region.",
            )

    geolocation = fingerprint.geolocation
    if geolocation is not None:
        accuracy_km = geolocation.accuracy / 1000
        if geolocation.accuracy > 10000:
            panel.penalize(
                "geolocation", 10,
                "Low geolocation accuracy",
                SignalImpact.LOW,
                f"Geolocation accuracy is {accuracy_km:.1f}km, which is quite low.",
                "This is normal for IP-based geolocation.",
            )
        else:
            panel.note(
                "Good geolocation accuracy",
                f"Geolocation accuracy is {accuracy_km:.1f}km.",
                "Accurate location detection available.",
            )
    else:
        panel.penalize(
            "geolocation", 5,
            "Geolocation access denied or unavailable",
            SignalImpact.LOW,
            "Unable to access precise geolocation data.",
            "This is normal if location services are disabled.",
        )

    return panel.result([
        fingerprint.timezone or "",
        *(fingerprint.languages or []),
        f"{geolocation.latitude},{geolocation.longitude}" if geolocation else "",
    ])


def evaluate_ip(insight: NormalizedIpInsight) -> EnhancedPanelResult:
    """Check IP reputation, anonymization and network characteristics."""
    panel = PanelScorer({"reputation": 40, "privacy": 35, "network": 25}, base_confidence=95)
    risk_score = insight.risk_score
    privacy = insight.privacy
    network_type = insight.network_type
    org = insight.org

    if risk_score and risk_score > 10:
        panel.penalize(
            "reputation", min(risk_score, 30),
            f"IP has elevated risk score ({risk_score:g})",
            SignalImpact.HIGH if risk_score > 50 else SignalImpact.MEDIUM,
            "This IP address has been associated with suspicious activity or has a "
            "higher-than-normal risk profile.",
            "Consider using a different IP address for sensitive operations.",
        )

    if privacy is not None:
        if privacy.vpn:
            panel.penalize(
                "privacy", 25,
                "IP address belongs to VPN service",
                SignalImpact.MEDIUM,
                "This IP address is associated with a VPN provider, which may be flagged by some services.",
                "VPN usage is legitimate but may attract additional scrutiny.",
            )
        if privacy.proxy:
            panel.penalize(
                "privacy", 30,
                "IP address detected as proxy",
                SignalImpact.HIGH,
                "This IP address is associated with proxy services, commonly used for anonymity.",
                "Proxy usage may be detected and blocked by some services.",
            )
        if privacy.tor:
            panel.penalize(
                "privacy", 35,
                "IP address is Tor exit node",
                SignalImpact.HIGH,
                "This IP address is a known Tor exit node, providing strong anonymity but often blocked.",
                "Tor provides strong privacy but is widely recognized and may be blocked.",
            )

    if network_type:
        if HOSTING_NETWORK.search(network_type):
            panel.penalize(
                "network", 35,
                f"IP from hosting provider: {network_type}",
                SignalImpact.HIGH,
                "This IP address originates from a datacenter or cloud provider rather than residential ISP.",
                "Residential IP addresses typically have better reputation than hosting IPs.",
            )
        elif MOBILE_NETWORK.search(network_type):
            panel.note(
                f"Mobile network detected: {network_type}",
                "This IP address originates from a mobile network provider.",
                "Mobile IPs are common and generally have good reputation.",
            )
        elif ISP_NETWORK.search(network_type):
            panel.note(
                f"ISP connection detected: {network_type}",
                "This IP address originates from a residential ISP.",
                "Residential ISP connections typically have the best reputation.",
            )

    if org and HOSTING_ORG.search(org):
        panel.penalize(
            "network", 15,
            f"Organization suggests hosting/VPN: {org}",
            SignalImpact.MEDIUM,
            f'The IP owner "{org}" appears to be a hosting or VPN provider.',
            "Verify this matches your expected IP provider.",
        )

    if insight.asn:
        digits = re.sub(r"\D", "", insight.asn)
        if digits and int(digits) > HIGH_ASN_THRESHOLD:
            panel.note(
                f"High ASN number: {insight.asn}",
                f"Autonomous System Number {insight.asn} is relatively new, which may indicate "
                "specific types of providers.",
                "This is typically not concerning.",
                impact=SignalImpact.LOW,
            )

    if not panel.has_findings():
        panel.note(
            "IP address shows clean reputation",
            "No significant risk factors detected for this IP address.",
            "This IP address appears suitable for most use cases.",
        )

    return panel.result([org or "", insight.asn or "", network_type or "", "privacy" if privacy else "standard"])


def evaluate_hardware(fingerprint: FingerprintPayload) -> EnhancedPanelResult:
    """Check canvas, WebGL, audio and font fingerprints."""
    panel = PanelScorer({"canvas": 30, "webgl": 25, "audio": 20, "fonts": 15, "screen": 10}, base_confidence=88)

    canvas = fingerprint.canvas
    if canvas is None:
        panel.penalize(
            "canvas", 20,
            "Canvas fingerprinting failed",
            SignalImpact.HIGH,
            "Unable to generate canvas fingerprint, possibly blocked by privacy tools.",
            "Some sites may not function properly without canvas access.",
        )
    elif len(canvas.hash) > 10:
        panel.note(
            "Canvas fingerprint collected successfully",
            f"Canvas fingerprint hash: {canvas.hash[:8]}...",
            "Normal canvas fingerprinting detected.",
        )
    else:
        panel.penalize(
            "canvas", 15,
            "Canvas fingerprint incomplete or unusual",
            SignalImpact.MEDIUM,
            "Canvas fingerprinting may be blocked or returning inconsistent results.",
            "This may indicate privacy extensions or browser configuration issues.",
        )

    webgl = fingerprint.webgl
    ua = fingerprint.user_agent
    if webgl is None:
        panel.penalize(
            "webgl", 18,
            "WebGL fingerprinting unavailable",
            SignalImpact.HIGH,
            "WebGL context could not be created or is blocked.",
            "This may indicate privacy extensions or hardware limitations.",
        )
    else:
        vendor_mismatch = (
            (re.search(r"google", webgl.vendor, re.IGNORECASE) and not re.search(r"chrome", ua, re.IGNORECASE))
            or (re.search(r"microsoft", webgl.vendor, re.IGNORECASE) and not re.search(r"edge|chrome", ua, re.IGNORECASE))
        )
        if vendor_mismatch:
            panel.penalize(
                "webgl", 15,
                "WebGL vendor/browser mismatch detected",
                SignalImpact.MEDIUM,
                f'WebGL vendor "{webgl.vendor}" may not match User-Agent string.',
                "Ensure browser configuration consistency.",
            )
        else:
            panel.note(
                "WebGL fingerprint appears consistent",
                f"WebGL vendor: {webgl.vendor}, Renderer: {webgl.renderer[:30]}...",
                "WebGL fingerprinting working normally.",
            )

    audio = fingerprint.audio
    if audio is None:
        panel.penalize(
            "audio", 12,
            "Audio fingerprinting failed",
            SignalImpact.MEDIUM,
            "Audio Context API could not be accessed or is blocked.",
            "May indicate privacy extensions or browser security settings.",
        )
    elif len(audio.hash) > 5:
        panel.note(
            "Audio fingerprint generated successfully",
            f"Audio context fingerprint: {audio.hash[:6]}...",
            "Audio fingerprinting working normally.",
        )
    else:
        panel.penalize(
            "audio", 10,
            "Audio fingerprint incomplete",
            SignalImpact.MEDIUM,
            "Audio context fingerprinting may be partially blocked.",
            "This may affect some web applications that use audio.",
        )

    enhanced_fonts = fingerprint.enhanced_fonts
    if enhanced_fonts is not None:
        font_count = len(enhanced_fonts.detected or [])
        if font_count == 0:
            panel.penalize(
                "fonts", 20,
                "No fonts detected - unusual",
                SignalImpact.HIGH,
                "Font enumeration returned no results, which is highly unusual.",
                "This strongly indicates font fingerprinting protection or configuration issues.",
            )
        elif font_count < 20:
            panel.penalize(
                "fonts", 10,
                f"Very few fonts detected ({font_count})",
                SignalImpact.MEDIUM,
                "Fewer fonts than typical for most systems.",
                "May indicate font fingerprinting protection or minimal system configuration.",
            )
        else:
            panel.note(
                f"Font fingerprint collected ({font_count} fonts)",
                f"Detected {font_count} system fonts, which is within normal range.",
                "Font fingerprinting working normally.",
            )
    elif fingerprint.fonts is not None:
        font_count = len(fingerprint.fonts)
        if font_count == 0:
            panel.penalize(
                "fonts", 15,
                "No fonts detected",
                SignalImpact.MEDIUM,
                "Font enumeration returned no results.",
                "May indicate font fingerprinting protection.",
            )
        else:
            panel.note(
                f"Font fingerprint collected ({font_count} fonts)",
                f"Detected {font_count} system fonts.",
                "Font fingerprinting working normally.",
            )
    else:
        panel.penalize(
            "fonts", 15,
            "Font fingerprinting failed",
            SignalImpact.MEDIUM,
            "Font enumeration could not be performed.",
            "May indicate privacy extensions or browser limitations.",
        )

    fonts = (enhanced_fonts.detected if enhanced_fonts else None) or fingerprint.fonts or []
    return panel.result([
        canvas.hash if canvas else "",
        webgl.hash if webgl else "",
        audio.hash if audio else "",
        *fonts,
    ])


def evaluate_software(fingerprint: FingerprintPayload) -> EnhancedPanelResult:
    """Check cookies, legacy plugins, WebRTC and DOM storage."""
    panel = PanelScorer({"cookies": 25, "plugins": 20, "webrtc": 25, "dom": 30}, base_confidence=85)

    if fingerprint.cookies_enabled is False:
        panel.penalize(
            "cookies", 20,
            "Cookies are disabled",
            SignalImpact.MEDIUM,
            "Cookies are completely disabled, which is uncommon for most browsing scenarios.",
            "Consider enabling cookies for better website compatibility.",
        )
    else:
        panel.note(
            "Cookies are enabled",
            "Cookie functionality is available and working normally.",
            "Standard configuration detected.",
        )

    if fingerprint.flash_enabled or fingerprint.java_enabled:
        panel.penalize(
            "plugins", 12,
            "Legacy plugins detected (Flash/Java)",
            SignalImpact.MEDIUM,
            "Legacy plugins like Flash or Java are outdated and security risks.",
            "Remove or disable legacy plugins for better security.",
        )

    if fingerprint.webrtc_disabled:
        panel.penalize(
            "webrtc", 15,
            "WebRTC appears to be disabled",
            SignalImpact.MEDIUM,
            "WebRTC functionality is not available, possibly due to privacy extensions.",
            "WebRTC is required for many real-time communication features.",
        )
    else:
        panel.note(
            "WebRTC functionality available",
            "WebRTC APIs are accessible and working normally.",
            "Standard WebRTC configuration detected.",
        )

    if fingerprint.dom_storage_enabled is False:
        panel.penalize(
            "dom", 18,
            "DOM storage (localStorage/sessionStorage) disabled",
            SignalImpact.HIGH,
            "DOM storage is not available, which will break many modern web applications.",
            "Enable DOM storage for proper website functionality.",
        )

    return panel.result([
        "cookies-enabled" if fingerprint.cookies_enabled else "cookies-disabled",
        "webrtc-disabled" if fingerprint.webrtc_disabled else "webrtc-enabled",
        "dom-enabled" if fingerprint.dom_storage_enabled else "dom-disabled",
    ])
