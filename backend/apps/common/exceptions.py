"""
业务异常体系（BizError）

约定与作用：
- 所有“预期内的业务错误”都继承 BizError，由全局异常处理器转换为统一响应
- 统一错误码/HTTP 状态/提示语，便于前后端对齐
- 程序逻辑错误（不变量被破坏）不属于业务错误，使用 InvariantViolationError 直接失败，按 500 处理

错误码规范：
- 40000~40099      : 通用请求 / 参数错误
- 40300~40399      : 权限错误
- 40400~40499      : 资源不存在（队伍、题目等）
- 40900~40999      : 资源冲突（重名队伍等）
- 47000~47099      : 队伍 / 进度相关错误
- 48000~48099      : 题目访问相关错误（未开放、未解锁）
- 50300~50399      : 瞬时失败（并发写入重试耗尽等），可安全重试
"""


class BizError(Exception):
    """
    所有业务异常的基类

    - 子类只需覆盖 default_code / default_message / http_status
    - 可在 __init__ 时传入 message / code / extra 覆盖默认值，extra 会原样透传给前端
    """

    default_code: int = 40000
    default_message: str = "业务错误"
    http_status: int = 400

    def __init__(self, message: str | None = None, code: int | None = None, *, extra: dict | None = None):
        self.code = code if code is not None else self.default_code
        self.message = message if message is not None else self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ======================
# 通用类错误
# ======================

class ValidationError(BizError):
    """
    参数校验 / 请求数据不合法：
    - 缺少必要字段、字段格式错误、ID 非法
    """
    default_code = 40002
    default_message = "请求参数不合法"
    http_status = 400


class PermissionDeniedError(BizError):
    """无权限执行当前操作"""
    default_code = 40300
    default_message = "无权限执行此操作"
    http_status = 403


class NotFoundError(BizError):
    """资源不存在：队伍、题目、完成记录等"""
    default_code = 40400
    default_message = "资源不存在"
    http_status = 404


class ConflictError(BizError):
    """
    资源冲突：
    - 已存在同名队伍
    - 当前状态下不允许重复操作
    """
    default_code = 40900
    default_message = "资源冲突"
    http_status = 409


# ======================
# 队伍 / 进度相关
# ======================

class TeamError(BizError):
    """队伍与进度相关错误的基类"""
    default_code = 47000
    default_message = "队伍操作失败"
    http_status = 400


class TeamInactiveError(TeamError):
    """队伍已停用，不再接受完成记录或兑换"""
    default_code = 47001
    default_message = "队伍已停用"


# ======================
# 题目访问相关
# ======================

class ChallengeError(BizError):
    """题目相关错误的基类"""
    default_code = 48000
    default_message = "题目操作失败"
    http_status = 400


class ChallengeNotAvailableError(ChallengeError):
    """题目未开放或已下线"""
    default_code = 48001
    default_message = "题目未开放"


class ChallengeLockedError(ChallengeError):
    """
    题目尚未解锁：
    - Buildathon 题目需先兑换解锁码
    - 前置题目尚未完成
    """
    default_code = 48010
    default_message = "题目尚未解锁"
    http_status = 403


# ======================
# 瞬时失败
# ======================

class TransientError(BizError):
    """可安全重试的瞬时失败"""
    default_code = 50300
    default_message = "服务繁忙，请稍后重试"
    http_status = 503


class TeamWriteConflictError(TransientError):
    """
    队伍并发写入冲突，内部重试次数已耗尽：
    - 未写入任何状态，调用方可直接重试
    """
    default_code = 50310
    default_message = "队伍数据正在被其他请求更新，请稍后重试"


# ======================
# 程序逻辑错误
# ======================

class InvariantViolationError(RuntimeError):
    """
    领域不变量被破坏（积分与完成记录不一致、重复捕获需求快照、常规流程清空解锁码等）

    不继承 BizError：出现即说明代码存在缺陷，必须大声失败而不是静默修正状态。
    """


def require(condition: bool, error: BizError) -> None:
    """条件不满足时抛出指定业务异常"""
    if not condition:
        raise error


def ensure_invariant(condition: bool, message: str) -> None:
    """不变量校验：不满足时抛出 InvariantViolationError"""
    if not condition:
        raise InvariantViolationError(message)
