# 导入订阅模型
from .user_subscription import UserSubscription
# 导入基础模型
from .base import *
