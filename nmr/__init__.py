"""Node Membership Reconciler (NMR).

Small control loop that keeps network configuration in step with the
nodes of a Kubernetes cluster:
 - discovers node addresses from a node annotation
 - detects membership changes between poll cycles
 - rewrites an iptables chain, or an nginx upstream file + reload

The implementation is intentionally small so it can be audited and explained.
"""
