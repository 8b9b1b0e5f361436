"""
Private section access requests.

NoRequest -> Pending -> Approved | Rejected. Approval is the only path that
sets a user's private access grant; a rejected user may submit again.
"""
