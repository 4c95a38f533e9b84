"""
Bundled default checklist template.

Seeded into the Template Store the first time it is found empty, so a fresh
deployment starts with the standard commissioning checklist.
"""

DEFAULT_PRODUCT_TYPES = ["Multi V", "AHU", "ISC", "Water", "H/Kit", "DOAS"]

DEFAULT_PRODUCTS = [
    {"name": "ODU", "model_name": "", "quantity": ""},
    {"name": "IDU", "model_name": "", "quantity": ""},
]

DEFAULT_REPORT_TITLE = "LGE SAC Commissioning Report"

DEFAULT_TEMPLATE_CATEGORIES = [
    {
        "name": "Material",
        "items": [
            ("Diameter and Thickness of refrigerant pipe should be as recommended by LG.", "Multi V"),
            ("Copper pipe should be covered with a cap for preventing inflow of external materials.", "Multi V"),
        ],
    },
    {
        "name": "Refrigerant Pipe",
        "items": [
            ("Pipe connection and branch installation must be done according to the LG installation standards.",
             "Multi V"),
            ("Pipe welding should be performed while blowing nitrogen through the pipe.", "Multi V"),
        ],
    },
    {
        "name": "Drain Pipe",
        "items": [
            ("Drain pipe size should be as recommended in the installation manual of LG.", "Multi V"),
            ("Air vent should be installed to prevent reverse flow in the common drain pipe.", "Multi V"),
        ],
    },
    {
        "name": "Communication and Power cable",
        "items": [
            ("Communication cable should be two core shield wire and its size should be more than 1.0mm².",
             "Multi V"),
            ("Communication cable should be enclosed in a conduit pipe and kept appropriate spacing away "
             "from power cable as PDB.", "Multi V"),
            ("Power of all IDUs should be supplied through one circuit breaker. Don't install individual "
             "switch or connect power to the IDU from a separate circuit breaker.", "Multi V"),
        ],
    },
    {
        "name": "Indoor Unit",
        "items": [
            ("Remote controller should be placed where it would not be influenced by external temperature "
             "and the IDU discharge airflow.", "Multi V"),
            ("Connection of IDU and the drain pipe should be done by a flexible hose to prevent connection "
             "breakage or drain pipe crack due to its vibration.", "Multi V"),
            ("Service hole size should be sufficient for checking and servicing the indoor unit", "Multi V"),
        ],
    },
    {
        "name": "Outdoor Unit",
        "items": [
            ("Use at least 200mm high concrete or/and H-beam support as a base support of the ODU. "
             "And ODU should be fixed tightly with anchor bolt.", "Multi V"),
            ("Anti-vibration pad should be placed between outdoor unit and foundation.", "Multi V"),
        ],
    },
    {
        "name": "AHU",
        "items": [
            ("AHU Comm kit Installation (SVC Area, preventing water)", "AHU"),
            ("EEV kit capacity should match with the ODU", "AHU"),
            ("Additional Refrigerant : Additional refrigerant of DX coil and extended pipe should be charged",
             "AHU"),
        ],
    },
    {
        "name": "ISC",
        "items": [
            ("The anti-vibration pad should be 2 layers of 10 mm or more.", "ISC"),
            ("2-1. HMI communication line spec should be 0.75㎟ 2-line Shield and the length should be "
             "within 500m.", "ISC"),
            ("Is there a solution for freeze and burst prevention? (antifreeze/ flow-switch/ circulation "
             "pump interlock).", "ISC"),
        ],
    },
]


def default_item_count() -> int:
    return sum(len(cat["items"]) for cat in DEFAULT_TEMPLATE_CATEGORIES)
