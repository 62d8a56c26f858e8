"""Built-in catalogue - stat variables, default charts, and the fallback template.

Variable names match the stored statistics fields exactly; renaming any of
them would orphan stored records, so they are registered as built-ins.

The fallback template is the terminal level of template resolution.  It is a
versioned value built here and injected into the resolver, never an inline
literal at call sites.
"""

from .models import (
    ChartConfiguration,
    ChartElement,
    ChartType,
    DataBlock,
    ElementFormat,
    GridSettings,
    ReportTemplate,
    ValueType,
    Variable,
    VariableFlags,
    VariableType,
)

FALLBACK_TEMPLATE_ID = "__fallback__"
FALLBACK_TEMPLATE_VERSION = "1"
FALLBACK_CHART_ID = "total-images"

_COUNT = VariableType.COUNT
_TEXT = VariableType.TEXT
_CURRENCY = VariableType.CURRENCY
_PERCENTAGE = VariableType.PERCENTAGE

_CLICKER = VariableFlags(visible_in_clicker=True, editable_in_manual=True)
_MANUAL = VariableFlags(visible_in_clicker=False, editable_in_manual=True)
_SYNCED = VariableFlags(visible_in_clicker=False, editable_in_manual=False)

_EURO = ElementFormat(rounded=True, prefix="€")
_PERCENT = ElementFormat(rounded=False, suffix="%")


def _var(name, label, category, vtype=_COUNT, flags=_CLICKER, description=None):
    return Variable(name=name, label=label, type=vtype, category=category,
                    flags=flags, description=description)


def _derived(name, label, category, formula, vtype=_COUNT, description=None):
    return Variable(name=name, label=label, type=vtype, category=category,
                    derived=True, formula=formula, flags=_SYNCED,
                    description=description)


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

def _base_variables() -> list[Variable]:
    return [
        # Images
        _var("remoteImages", "Remote Images", "Images", description="Images taken remotely"),
        _var("hostessImages", "Hostess Images", "Images", description="Images taken by hostesses"),
        _var("selfies", "Selfies", "Images", description="Self-shot images"),
        # Fans (location)
        _var("indoor", "Indoor", "Fans"),
        _var("outdoor", "Outdoor", "Fans"),
        _var("stadium", "Location Fans", "Fans", description="On-site (stadium) fans"),
        # Demographics
        _var("female", "Female", "Demographics"),
        _var("male", "Male", "Demographics"),
        _var("genAlpha", "Gen Alpha", "Demographics"),
        _var("genYZ", "Gen Y+Z", "Demographics"),
        _var("genX", "Gen X", "Demographics"),
        _var("boomer", "Boomer", "Demographics"),
        # Merchandise
        _var("merched", "People with Merch", "Merchandise"),
        _var("jersey", "Jersey", "Merchandise"),
        _var("scarf", "Scarf", "Merchandise"),
        _var("flags", "Flags", "Merchandise"),
        _var("baseballCap", "Baseball Cap", "Merchandise"),
        _var("other", "Other", "Merchandise"),
        _var("jerseyPrice", "Jersey Price", "Merchandise", _CURRENCY, _MANUAL),
        _var("scarfPrice", "Scarf Price", "Merchandise", _CURRENCY, _MANUAL),
        _var("flagsPrice", "Flags Price", "Merchandise", _CURRENCY, _MANUAL),
        _var("capPrice", "Cap Price", "Merchandise", _CURRENCY, _MANUAL),
        _var("otherPrice", "Other Price", "Merchandise", _CURRENCY, _MANUAL),
        # Moderation
        _var("approvedImages", "Approved Images", "Moderation", flags=_MANUAL),
        _var("rejectedImages", "Rejected Images", "Moderation", flags=_MANUAL),
        # Visits
        _var("visitQrCode", "QR Code Visits", "Visits", flags=_MANUAL),
        _var("visitShortUrl", "Short URL Visits", "Visits", flags=_MANUAL),
        _var("visitWeb", "Web Visits", "Visits", flags=_MANUAL),
        _var("visitFacebook", "Facebook Visits", "Visits", flags=_MANUAL),
        _var("visitInstagram", "Instagram Visits", "Visits", flags=_MANUAL),
        _var("visitYoutube", "YouTube Visits", "Visits", flags=_MANUAL),
        _var("visitTiktok", "TikTok Visits", "Visits", flags=_MANUAL),
        _var("visitX", "X Visits", "Visits", flags=_MANUAL),
        _var("visitTrustpilot", "Trustpilot Visits", "Visits", flags=_MANUAL),
        # Event
        _var("eventAttendees", "Event Attendees", "Event", flags=_MANUAL),
        _var("eventTicketPurchases", "Ticket Purchases", "Event", flags=_MANUAL),
        _var("eventResultHome", "Event Result Home", "Event", flags=_MANUAL),
        _var("eventResultVisitor", "Event Result Visitor", "Event", flags=_MANUAL),
        _var("eventValuePropositionVisited", "Value Proposition Visited", "Event", flags=_MANUAL),
        _var("eventValuePropositionPurchases", "Value Proposition Purchases", "Event", flags=_MANUAL),
        # Bitly (filled by sync, not edited by hand)
        _var("bitlyTotalClicks", "Total Bitly Clicks", "Bitly", flags=_SYNCED),
        _var("bitlyUniqueClicks", "Unique Bitly Clicks", "Bitly", flags=_SYNCED),
        _var("bitlyMobileClicks", "Mobile Clicks", "Bitly", flags=_SYNCED),
        _var("bitlyDesktopClicks", "Desktop Clicks", "Bitly", flags=_SYNCED),
        _var("bitlyTopCountry", "Top Country", "Bitly", _TEXT, _SYNCED),
        # Report content
        _var("reportText1", "Report Text 1", "Report Content", _TEXT, _MANUAL),
        _var("reportTable1", "Report Table 1", "Report Content", _TEXT, _MANUAL),
        _var("reportImage1", "Report Image 1", "Report Content", _TEXT, _MANUAL),
    ]


def _derived_variables() -> list[Variable]:
    return [
        _derived("allImages", "Total Images", "Images",
                 "remoteImages + hostessImages + selfies",
                 description="Sum of Remote, Hostess, and Selfies"),
        _derived("remoteFans", "Remote", "Fans", "indoor + outdoor",
                 description="Indoor + Outdoor (aggregated)"),
        _derived("totalFans", "Total Fans", "Fans", "remoteFans + stadium",
                 description="Remote + Stadium"),
        _derived("totalUnder40", "Total Under 40", "Demographics", "genAlpha + genYZ"),
        _derived("totalOver40", "Total Over 40", "Demographics", "genX + boomer"),
        _derived("bitlyClickRate", "Bitly Click-Through Rate", "Bitly",
                 "percentage(bitlyTotalClicks, eventAttendees)", _PERCENTAGE),
        _derived("approvalRate", "Image Approval Rate", "Moderation",
                 "percentage(approvedImages, remoteImages)", _PERCENTAGE),
    ]


def _text_variables() -> list[Variable]:
    return [
        _var("hashtags", "General Hashtags", "Hashtags", _TEXT, _SYNCED,
             description="All general hashtags (plain list)"),
    ]


def builtin_variables() -> list[Variable]:
    """Every built-in variable, in registry order."""
    return _base_variables() + _derived_variables() + _text_variables()


def build_category_text_variables(categories: list[str]) -> list[Variable]:
    """One text variable per hashtag category, e.g. ``hashtagsCategory_Country``."""
    out = []
    for category in categories:
        key = category.strip()
        slug = "".join(ch if ch.isalnum() else "_" for ch in key).strip("_")
        while "__" in slug:
            slug = slug.replace("__", "_")
        if not slug:
            continue
        out.append(Variable(
            name=f"hashtagsCategory_{slug}",
            label=f"Hashtags - {key}",
            type=_TEXT,
            category="Hashtags by Category",
            flags=_SYNCED,
            description=f'All hashtags in the "{key}" category',
        ))
    return out


# ---------------------------------------------------------------------------
# Default charts
# ---------------------------------------------------------------------------

def _pie(chart_id, title, emoji, order, *elements):
    return ChartConfiguration(chart_id=chart_id, title=title, type=ChartType.PIE,
                              emoji=emoji, order=order, elements=tuple(elements))


def build_default_charts() -> list[ChartConfiguration]:
    """The stock chart set shipped with a fresh install."""
    return [
        ChartConfiguration(
            chart_id=FALLBACK_CHART_ID,
            title="Total Images",
            type=ChartType.KPI,
            emoji="📸",
            order=1,
            elements=(ChartElement(formula="stats.allImages", label="Images"),),
        ),
        _pie("gender-distribution", "Gender Distribution", "👥", 2,
             ChartElement("stats.female", "Female", "#ff6b9d"),
             ChartElement("stats.male", "Male", "#4a90e2")),
        _pie("fans-location", "Fans Location", "📍", 3,
             ChartElement("stats.remoteFans", "Remote", "#3b82f6"),
             ChartElement("stats.stadium", "Event", "#f59e0b")),
        _pie("age-groups", "Age Groups", "👥", 4,
             ChartElement("stats.genAlpha + stats.genYZ", "Under 40", "#06b6d4"),
             ChartElement("stats.genX + stats.boomer", "Over 40", "#f97316")),
        ChartConfiguration(
            chart_id="merchandise",
            title="Merchandise",
            type=ChartType.BAR,
            emoji="🛍️",
            order=5,
            elements=(
                ChartElement("stats.jersey", "Jersey", "#7b68ee"),
                ChartElement("stats.scarf", "Scarf", "#ff6b9d"),
                ChartElement("stats.flags", "Flags", "#4ecdc4"),
                ChartElement("stats.baseballCap", "Baseball Cap", "#ffe66d"),
                ChartElement("stats.other", "Other", "#a8e6cf"),
            ),
        ),
        ChartConfiguration(
            chart_id="visit-sources",
            title="Visit Sources",
            type=ChartType.BAR,
            emoji="🌐",
            order=6,
            elements=(
                ChartElement("stats.visitQrCode + stats.visitShortUrl", "QR + Short URL", "#3b82f6"),
                ChartElement("stats.visitWeb", "Web", "#10b981"),
                ChartElement(
                    "stats.visitFacebook + stats.visitInstagram + stats.visitYoutube"
                    " + stats.visitTiktok + stats.visitX",
                    "Social", "#f59e0b",
                ),
            ),
        ),
        ChartConfiguration(
            chart_id="approval-rate",
            title="Image Approval Rate",
            type=ChartType.KPI,
            emoji="✅",
            order=7,
            elements=(ChartElement(
                formula="percentage(stats.approvedImages, stats.remoteImages)",
                label="Approved",
                type=ValueType.PERCENTAGE,
                formatting=_PERCENT,
            ),),
        ),
        ChartConfiguration(
            chart_id="merch-value",
            title="Merchandise Value",
            type=ChartType.VALUE,
            emoji="💶",
            order=8,
            elements=(
                ChartElement(
                    "stats.jersey * stats.jerseyPrice + stats.scarf * stats.scarfPrice",
                    "Merch Value", "#3b82f6", type=ValueType.CURRENCY, formatting=_EURO,
                ),
                ChartElement(
                    "stats.flags * stats.flagsPrice + stats.baseballCap * stats.capPrice",
                    "Accessories Value", "#10b981", type=ValueType.CURRENCY, formatting=_EURO,
                ),
            ),
        ),
        ChartConfiguration(
            chart_id="report-text",
            title="Summary",
            type=ChartType.TEXT,
            order=9,
            elements=(ChartElement("stats.reportText1"),),
        ),
        ChartConfiguration(
            chart_id="report-image",
            title="Highlight",
            type=ChartType.IMAGE,
            order=10,
            aspect_ratio="16:9",
            elements=(ChartElement("stats.reportImage1"),),
        ),
    ]


# ---------------------------------------------------------------------------
# Fallback template
# ---------------------------------------------------------------------------

def build_fallback_template() -> ReportTemplate:
    """Minimal one-KPI template used when no template exists at any level."""
    return ReportTemplate(
        id=FALLBACK_TEMPLATE_ID,
        name="Built-in minimal report",
        grid_settings=GridSettings(desktop_units=3, tablet_units=2, mobile_units=1),
        data_blocks=(DataBlock(id="fallback-kpi", chart_id=FALLBACK_CHART_ID, order=0),),
        version=FALLBACK_TEMPLATE_VERSION,
    )
