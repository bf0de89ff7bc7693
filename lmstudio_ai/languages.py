"""
Languages accepted for AI generated image metadata.
"""

import locale
import os
from typing import Optional

from .logging_setup import get_logger

logger = get_logger(__name__)

DEFAULT_LANGUAGE = "English"

SUPPORTED_LANGUAGES = (
    "Afrikaans", "Akan", "Albanian", "Amharic", "Arabic", "Armenian", "Azerbaijani",
    "Basque", "Belarusian", "Bemba", "Bengali", "Bihari", "Bosnian", "Breton",
    "Bulgarian", "Cambodian", "Catalan", "Cherokee", "Chichewa",
    "Chinese (Simplified)", "Chinese (Traditional)", "Corsican", "Croatian", "Czech",
    "Danish", "Dutch", "English", "Esperanto", "Estonian", "Ewe", "Faroese",
    "Filipino", "Finnish", "French", "Frisian", "Ga", "Galician", "Georgian",
    "German", "Greek", "Guarani", "Gujarati", "Haitian Creole", "Hausa", "Hawaiian",
    "Hebrew", "Hindi", "Hungarian", "Icelandic", "Igbo", "Indonesian", "Interlingua",
    "Irish", "Italian", "Japanese", "Javanese", "Kannada", "Kazakh", "Kinyarwanda",
    "Kirundi", "Kongo", "Korean", "Krio (Sierra Leone)", "Kurdish",
    "Kurdish (Soranî)", "Kyrgyz", "Laothian", "Latin", "Latvian", "Lingala",
    "Lithuanian", "Lozi", "Luganda", "Luo", "Macedonian", "Malagasy", "Malay",
    "Malayalam", "Maltese", "Maori", "Marathi", "Mauritian Creole", "Moldavian",
    "Mongolian", "Montenegrin", "Nepali", "Nigerian Pidgin", "Northern Sotho",
    "Norwegian", "Norwegian (Nynorsk)", "Occitan", "Oriya", "Oromo", "Pashto",
    "Persian", "Polish", "Portuguese (Brazil)", "Portuguese (Portugal)", "Punjabi",
    "Quechua", "Romanian", "Romansh", "Runyakitara", "Russian", "Scots Gaelic",
    "Serbian", "Serbo-Croatian", "Sesotho", "Setswana", "Seychellois Creole",
    "Shona", "Sindhi", "Sinhalese", "Slovak", "Slovenian", "Somali", "Spanish",
    "Spanish (Latin American)", "Sundanese", "Swahili", "Swedish", "Tajik", "Tamil",
    "Tatar", "Telugu", "Thai", "Tigrinya", "Tonga", "Tshiluba", "Tumbuka",
    "Turkish", "Turkmen", "Twi", "Uighur", "Ukrainian", "Urdu", "Uzbek",
    "Vietnamese", "Welsh", "Wolof", "Xhosa", "Yiddish", "Yoruba", "Zulu",
)

# Locale codes whose language name differs per region
_REGIONAL_LANGUAGES = {
    "pt_BR": "Portuguese (Brazil)",
    "pt_PT": "Portuguese (Portugal)",
    "zh_CN": "Chinese (Simplified)",
    "zh_SG": "Chinese (Simplified)",
    "zh_TW": "Chinese (Traditional)",
    "zh_HK": "Chinese (Traditional)",
    "nn_NO": "Norwegian (Nynorsk)",
}

_LANGUAGE_CODES = {
    "af": "Afrikaans", "ar": "Arabic", "bg": "Bulgarian", "bn": "Bengali",
    "ca": "Catalan", "cs": "Czech", "cy": "Welsh", "da": "Danish", "de": "German",
    "el": "Greek", "en": "English", "eo": "Esperanto", "es": "Spanish",
    "et": "Estonian", "eu": "Basque", "fa": "Persian", "fi": "Finnish",
    "fr": "French", "fy": "Frisian", "ga": "Irish", "gl": "Galician",
    "he": "Hebrew", "hi": "Hindi", "hr": "Croatian", "hu": "Hungarian",
    "hy": "Armenian", "id": "Indonesian", "is": "Icelandic", "it": "Italian",
    "ja": "Japanese", "ka": "Georgian", "kk": "Kazakh", "ko": "Korean",
    "lt": "Lithuanian", "lv": "Latvian", "mk": "Macedonian", "ms": "Malay",
    "mt": "Maltese", "nb": "Norwegian", "nl": "Dutch", "no": "Norwegian",
    "pl": "Polish", "pt": "Portuguese (Portugal)", "ro": "Romanian",
    "ru": "Russian", "sk": "Slovak", "sl": "Slovenian", "sq": "Albanian",
    "sr": "Serbian", "sv": "Swedish", "sw": "Swahili", "ta": "Tamil",
    "th": "Thai", "tl": "Filipino", "tr": "Turkish", "uk": "Ukrainian",
    "ur": "Urdu", "uz": "Uzbek", "vi": "Vietnamese", "zh": "Chinese (Simplified)",
    "zu": "Zulu",
}


def validate_language(language: str) -> str:
    """
    Return the canonical spelling of a supported language.

    Raises:
        ValueError: If the language is not supported
    """
    for supported in SUPPORTED_LANGUAGES:
        if supported.lower() == language.strip().lower():
            return supported
    raise ValueError(f"Unsupported language: {language}")


def language_from_locale(locale_name: Optional[str]) -> Optional[str]:
    """Map a locale name such as ``nl_NL.UTF-8`` to a language name."""
    if not locale_name:
        return None
    code = locale_name.split(".")[0].replace("-", "_")
    if code in _REGIONAL_LANGUAGES:
        return _REGIONAL_LANGUAGES[code]
    return _LANGUAGE_CODES.get(code.split("_")[0].lower())


def get_default_language() -> str:
    """Language of the current user's locale, English when unknown."""
    candidates = [os.environ.get("LC_ALL"), os.environ.get("LANG")]
    try:
        candidates.insert(0, locale.getlocale()[0])
    except ValueError as e:
        logger.debug(f"Could not read the current locale: {str(e)}")

    for candidate in candidates:
        language = language_from_locale(candidate)
        if language:
            return language
    return DEFAULT_LANGUAGE
