from tikprofil.models.business import Business, BusinessSettings
from tikprofil.models.product import Product
from tikprofil.models.order import Order
from tikprofil.models.coupon import Coupon, CouponUsage
