"""ShengSuanYun CLI。"""
