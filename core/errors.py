class BillingError(Exception):
    """支付/订阅相关异常基类。"""


class ConfigurationError(BillingError):
    """签名密钥等必需配置缺失，无法继续处理。"""


class AuthenticationError(BillingError):
    """回调签名与本地计算结果不一致。"""


class BusinessRejection(BillingError):
    """支付渠道报告支付失败（resultCode != 0000）。"""


class DataIntegrityError(BillingError):
    """回调报文或 mallReserved 无法解析、缺少必需字段。"""


class PersistenceError(BillingError):
    """订阅写库失败。用户已付款但未开通，需人工对账。"""


class PaymentRequestError(BillingError):
    """创建支付时的参数不合法。"""


class PaymentProviderError(BillingError):
    """Payverse 创建支付接口返回失败。"""

    def __init__(self, message: str, result_code: str = "", status_code: int = 0):
        super().__init__(message)
        self.result_code = result_code
        self.status_code = status_code
