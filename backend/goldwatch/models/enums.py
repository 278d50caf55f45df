"""Closed enumerations for vendors and product categories."""

from enum import Enum


class VendorSource(str, Enum):
    """Recognized vendor / brand line whose listings are scraped."""

    ANTAM = "antam"
    UBS = "ubs"
    GALERI24 = "galeri24"
    PEGADAIAN = "pegadaian"
    DINAR_G24 = "dinar_g24"
    BABY_GALERI24 = "baby_galeri24"
    ANTAM_MULIA_RETRO = "antam_mulia_retro"
    ANTAM_NON_PEGADAIAN = "antam_non_pegadaian"
    LOTUS_ARCHI = "lotus_archi"
    LOTUS_ARCHI_GIFT = "lotus_archi_gift"
    UBS_DISNEY = "ubs_disney"
    UBS_ELSA = "ubs_elsa"
    UBS_ANNA = "ubs_anna"
    UBS_MICKEY_FULLBODY = "ubs_mickey_fullbody"
    UBS_HELLO_KITTY = "ubs_hello_kitty"
    BABY_SERIES_TUMBUHAN = "baby_series_tumbuhan"
    BABY_SERIES_INVESTASI = "baby_series_investasi"
    BATIK_SERIES = "batik_series"


class ProductCategory(str, Enum):
    """Product line derived from the product label."""

    EMAS_BATANGAN = "emas_batangan"
    EMAS_BATANGAN_GIFT_SERIES = "emas_batangan_gift_series"
    EMAS_BATANGAN_SELAMAT_IDUL_FITRI = "emas_batangan_selamat_idul_fitri"
    EMAS_BATANGAN_IMLEK = "emas_batangan_imlek"
    EMAS_BATANGAN_BATIK_SERI_III = "emas_batangan_batik_seri_iii"
    PERAK_MURNI = "perak_murni"
    PERAK_HERITAGE = "perak_heritage"
    LIONTIN_BATIK_SERI_III = "liontin_batik_seri_iii"


# Vendor names exactly as vendor pages print them (upper-cased).
VENDOR_NAME_MAPPING: dict[str, VendorSource] = {
    "ANTAM": VendorSource.ANTAM,
    "LOGAM MULIA": VendorSource.ANTAM,
    "UBS": VendorSource.UBS,
    "GALERI 24": VendorSource.GALERI24,
    "PEGADAIAN": VendorSource.PEGADAIAN,
    "DINAR G24": VendorSource.DINAR_G24,
    "BABY GALERI 24": VendorSource.BABY_GALERI24,
    "ANTAM MULIA RETRO": VendorSource.ANTAM_MULIA_RETRO,
    "ANTAM NON PEGADAIAN": VendorSource.ANTAM_NON_PEGADAIAN,
    "LOTUS ARCHI": VendorSource.LOTUS_ARCHI,
    "LOTUS ARCHI GIFT": VendorSource.LOTUS_ARCHI_GIFT,
    "UBS DISNEY": VendorSource.UBS_DISNEY,
    "UBS ELSA": VendorSource.UBS_ELSA,
    "UBS ANNA": VendorSource.UBS_ANNA,
    "UBS MICKEY FULLBODY": VendorSource.UBS_MICKEY_FULLBODY,
    "UBS HELLO KITTY": VendorSource.UBS_HELLO_KITTY,
    "BABY SERIES TUMBUHAN": VendorSource.BABY_SERIES_TUMBUHAN,
    "BABY SERIES INVESTASI": VendorSource.BABY_SERIES_INVESTASI,
    "BATIK SERIES": VendorSource.BATIK_SERIES,
}
