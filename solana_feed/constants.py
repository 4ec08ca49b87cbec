from solders.pubkey import Pubkey

# ============================================
# BUILD
# ============================================
BUILD_TAG = "RPC-logs v3b"

# ============================================
# MINTS
# ============================================
WSOL_MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")
SOL_SYMBOL = "SOL"

# ============================================
# RPC
# ============================================
COMMITMENT = "confirmed"
SUBSCRIBE_REQUEST_ID = 1

# ============================================
# BUY SEVERITY THRESHOLDS (SOL)
# ============================================
# Format: [(upper_bound_exclusive, level), ...]; anything above the last bound is level 5
BUY_LEVEL_THRESHOLDS = [
    (0.1, 0),   # dust, never broadcast
    (0.5, 1),
    (1.0, 2),
    (5.0, 3),
    (10.0, 4),
]
MAX_BUY_LEVEL = 5

# ============================================
# EVENT SOURCES
# ============================================
SRC_RPC_LOGS = "rpc-logs"
SRC_DEBUG = "debug"
FAKE_WALLET = "FAKE_WALLET_TEST"
