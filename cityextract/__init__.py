"""GeoNames dump → processed cities JSON array"""
